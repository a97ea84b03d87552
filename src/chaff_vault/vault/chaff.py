# Vault - Chaff Obfuscation
#
# Hides which fields of a record are genuine by mixing each real field
# with `ratio` type-matched decoys, shuffling everything with a CSPRNG
# Fisher-Yates pass, and renaming the result field_0..field_{n-1}.
#
# Each ChaffField carries the name of the field it belongs to
# (`original_key`), so remove_chaff can rebuild the real map without
# relying on the randomized intermediate key, which the shuffle discards.

import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping

from ..core.config import DEFAULT_CHAFF_RATIO

_ALPHANUMERIC = string.ascii_uppercase + string.ascii_lowercase + string.digits

KEY_SUFFIX_LENGTH = 4


@dataclass
class ChaffField:
    """One entry of an obfuscated map, real or decoy."""

    value: Any
    is_real: bool
    original_key: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "isReal": self.is_real,
            "originalKey": self.original_key,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ChaffField":
        """
        Parse the stored form of one entry.

        Raises:
            ValueError: data is not a mapping, or a real entry has no
                        originalKey to restore it under
        """
        if not isinstance(data, Mapping):
            raise ValueError("Chaff entry must be an object")
        is_real = data.get("isReal") is True
        original_key = data.get("originalKey")
        if original_key is None and not is_real:
            original_key = ""
        if not isinstance(original_key, str) or (is_real and not original_key):
            raise ValueError("Real chaff entry is missing originalKey")
        return cls(value=data.get("value"), is_real=is_real, original_key=original_key)


def random_string(length: int) -> str:
    """Alphanumeric string drawn from the OS CSPRNG."""
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def value_kind(value: Any) -> str:
    """Classify a value as string, number, boolean, date or other."""
    # bool before int: bool is a subclass of int
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, datetime):
        return "date"
    if isinstance(value, str):
        return "string"
    return "other"


def generate_chaff_value(kind: str) -> Any:
    """Synthesize a decoy value of the given kind."""
    if kind == "string":
        return random_string(8 + secrets.randbelow(8))
    if kind == "number":
        return secrets.randbelow(1000)
    if kind == "boolean":
        return secrets.randbelow(2) == 1
    if kind == "date":
        moment = datetime.now(timezone.utc) - timedelta(days=secrets.randbelow(365))
        return moment.isoformat()
    return random_string(10)


def secure_shuffle(items: List[Any]) -> None:
    """In-place Fisher-Yates shuffle; swaps i with a uniform j in [0, i]."""
    for i in range(len(items) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        items[i], items[j] = items[j], items[i]


def add_chaff(fields: Mapping[str, Any], ratio: int = DEFAULT_CHAFF_RATIO) -> Dict[str, ChaffField]:
    """
    Mix real fields with decoys.

    Args:
        fields: Real field name → value
        ratio: Decoys generated per real field

    Returns:
        Map of field_0..field_{n*(ratio+1)-1} to ChaffField, in shuffled order
    """
    if ratio < 0:
        raise ValueError("ratio must be non-negative")

    staged: Dict[str, ChaffField] = {}
    all_keys: List[str] = []

    def fresh_key(name: str) -> str:
        # Suffix collisions are possible with 4 chars; redraw until unique.
        while True:
            candidate = f"{name}_{random_string(KEY_SUFFIX_LENGTH)}"
            if candidate not in staged:
                return candidate

    for name, value in fields.items():
        real_key = fresh_key(name)
        staged[real_key] = ChaffField(value=value, is_real=True, original_key=name)
        all_keys.append(real_key)

        kind = value_kind(value)
        for _ in range(ratio):
            chaff_key = fresh_key(name)
            staged[chaff_key] = ChaffField(
                value=generate_chaff_value(kind),
                is_real=False,
                original_key=name,
            )
            all_keys.append(chaff_key)

    secure_shuffle(all_keys)

    return {f"field_{index}": staged[key] for index, key in enumerate(all_keys)}


def remove_chaff(obfuscated: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Recover the real field map from add_chaff output.

    Accepts ChaffField objects or their dict form (as stored or exported).

    Raises:
        ValueError: an entry is malformed or a real entry lacks originalKey
    """
    if not isinstance(obfuscated, Mapping):
        raise ValueError("Obfuscated fields must be an object")
    result: Dict[str, Any] = {}
    for entry in obfuscated.values():
        item = entry if isinstance(entry, ChaffField) else ChaffField.from_dict(entry)
        if item.is_real:
            result[item.original_key] = item.value
    return result


def chaff_to_dict(obfuscated: Mapping[str, ChaffField]) -> Dict[str, Dict[str, Any]]:
    """JSON-ready form of an obfuscated map."""
    return {key: item.to_dict() for key, item in obfuscated.items()}
