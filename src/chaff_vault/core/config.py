# Core Module - Vault Configuration
#
# Settings come from (lowest to highest precedence):
#   1. Dataclass defaults below
#   2. A .env file in the working directory (python-dotenv)
#   3. CHAFF_VAULT_* environment variables
#
# KDF iteration count is part of the vault's on-disk contract: changing it
# after initialization makes the stored master key unreachable.

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigInvalid

ENV_PREFIX = "CHAFF_VAULT_"

DEFAULT_KDF_ITERATIONS = 100_000
DEFAULT_ROTATION_DAYS = 30
DEFAULT_CHAFF_RATIO = 3

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class VaultConfig:
    """Runtime settings for a vault instance.

    Args:
        data_dir: Directory holding the SQLite vault file.
        db_filename: Vault database filename inside data_dir.
        log_dir: Directory for the structured operational log.
        kdf_iterations: PBKDF2-SHA256 iteration count.
        rotation_days: Age after which the rotation clock is reset on unlock.
        chaff_ratio: Default number of decoys generated per real field.
        log_level: Level name for the operational log.
    """

    data_dir: Path = field(default_factory=lambda: Path("data"))
    db_filename: str = "vault.db"
    log_dir: Path = field(default_factory=lambda: Path("audit_logs"))
    kdf_iterations: int = DEFAULT_KDF_ITERATIONS
    rotation_days: int = DEFAULT_ROTATION_DAYS
    chaff_ratio: int = DEFAULT_CHAFF_RATIO
    log_level: str = "INFO"

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir) / self.db_filename

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper())

    def validate(self) -> "VaultConfig":
        """Check ranges. Returns self so calls can be chained."""
        if self.kdf_iterations <= 0:
            raise ConfigInvalid(f"kdf_iterations must be positive, got {self.kdf_iterations}")
        if self.rotation_days < 0:
            raise ConfigInvalid(f"rotation_days must be >= 0, got {self.rotation_days}")
        if self.chaff_ratio < 0:
            raise ConfigInvalid(f"chaff_ratio must be >= 0, got {self.chaff_ratio}")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigInvalid(f"Unknown log level: {self.log_level}")
        if not self.db_filename:
            raise ConfigInvalid("db_filename must not be empty")
        return self

    def with_overrides(self, **changes) -> "VaultConfig":
        return replace(self, **changes).validate()

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "VaultConfig":
        """Build a config from .env and CHAFF_VAULT_* variables.

        Raises:
            ConfigInvalid: A numeric variable is not an integer or out of range.
        """
        load_dotenv(dotenv_path=env_file, override=False)

        config = cls()
        overrides = {}

        for name, attr in (("DATA_DIR", "data_dir"), ("LOG_DIR", "log_dir")):
            value = os.environ.get(ENV_PREFIX + name)
            if value:
                overrides[attr] = Path(value)

        db_filename = os.environ.get(ENV_PREFIX + "DB_FILENAME")
        if db_filename:
            overrides["db_filename"] = db_filename

        log_level = os.environ.get(ENV_PREFIX + "LOG_LEVEL")
        if log_level:
            overrides["log_level"] = log_level.upper()

        for name, attr in (
            ("KDF_ITERATIONS", "kdf_iterations"),
            ("ROTATION_DAYS", "rotation_days"),
            ("CHAFF_RATIO", "chaff_ratio"),
        ):
            raw = os.environ.get(ENV_PREFIX + name)
            if raw is None or raw == "":
                continue
            try:
                overrides[attr] = int(raw)
            except ValueError:
                raise ConfigInvalid(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")

        return replace(config, **overrides).validate()
