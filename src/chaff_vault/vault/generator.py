# Vault - Password Generator & Strength Heuristics
#
# Random passwords from selected character classes (secrets module),
# a 0-100 strength score, and the master-password acceptance predicate.

import re
import secrets
import string
from typing import List, Tuple

from ..core.exceptions import ConfigInvalid

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
NUMBERS = string.digits
SYMBOLS = "!@#$%^&*()_+~`|}{[]:;?><,./-="

SIMILAR_CHARS = "il1Lo0O"
AMBIGUOUS_CHARS = "{}[]()/\\'\"`~,;:.<>"

MIN_LENGTH = 4
MAX_LENGTH = 128
DEFAULT_LENGTH = 16

_MASTER_SPECIALS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


def generate_password(
    length: int = DEFAULT_LENGTH,
    uppercase: bool = True,
    lowercase: bool = True,
    numbers: bool = True,
    symbols: bool = True,
    exclude_similar: bool = False,
    exclude_ambiguous: bool = False,
) -> str:
    """
    Generate a random password.

    At least one character of every selected class is guaranteed: one
    draw per class, the rest from the union, then a CSPRNG shuffle.

    Raises:
        ConfigInvalid: no class selected, length out of range, or the
                       exclusions leave a selected class empty
    """
    if not (MIN_LENGTH <= length <= MAX_LENGTH):
        raise ConfigInvalid(f"Password length must be between {MIN_LENGTH} and {MAX_LENGTH}")

    selected: List[Tuple[str, str]] = []
    if uppercase:
        selected.append(("uppercase", UPPERCASE))
    if lowercase:
        selected.append(("lowercase", LOWERCASE))
    if numbers:
        selected.append(("numbers", NUMBERS))
    if symbols:
        selected.append(("symbols", SYMBOLS))

    if not selected:
        raise ConfigInvalid("Please select at least one character type")

    removed = ""
    if exclude_similar:
        removed += SIMILAR_CHARS
    if exclude_ambiguous:
        removed += AMBIGUOUS_CHARS

    pools = []
    for name, alphabet in selected:
        pool = "".join(c for c in alphabet if c not in removed)
        if not pool:
            raise ConfigInvalid(f"Exclusions leave no {name} characters")
        pools.append(pool)

    charset = "".join(pools)
    chars = [secrets.choice(pool) for pool in pools]
    chars += [secrets.choice(charset) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)

    return "".join(chars)


def password_strength(password: str) -> int:
    """
    Score a password 0-100.

    Length gives up to 40, each character class present 10, and the share
    of unique characters up to 20.
    """
    if not password:
        return 0

    score = min(40.0, (len(password) / 20) * 40)

    classes = [
        re.search(r"[A-Z]", password),
        re.search(r"[a-z]", password),
        re.search(r"[0-9]", password),
        re.search(r"[^A-Za-z0-9]", password),
    ]
    score += sum(1 for c in classes if c) * 10

    score += (len(set(password)) / len(password)) * 20

    return min(100, round(score))


def is_strong_password(password: str) -> bool:
    """At least 8 chars with a digit, an uppercase letter and a special char."""
    return (
        len(password) >= 8
        and re.search(r"\d", password) is not None
        and re.search(r"[A-Z]", password) is not None
        and _MASTER_SPECIALS.search(password) is not None
    )
