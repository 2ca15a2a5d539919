"""
Short, human-transcribable identifiers for uploads.

Identifiers use a 32-symbol alphabet without I, L, O and U so they survive
being read aloud or typed from a printed label.
"""

import secrets
from typing import Callable, Optional

ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
DEFAULT_LENGTH = 8
DEFAULT_ATTEMPTS = 6


def generate_id(length: int = DEFAULT_LENGTH) -> str:
    """Return `length` symbols drawn from ALPHABET using the OS CSPRNG."""
    # 256 is a multiple of 32, so masking the low five bits stays uniform
    return "".join(ALPHABET[b & 31] for b in secrets.token_bytes(length))


def generate_unique_id(
    exists: Optional[Callable[[str], bool]] = None,
    length: int = DEFAULT_LENGTH,
    attempts: int = DEFAULT_ATTEMPTS,
) -> str:
    """
    Generate an identifier, regenerating while `exists(candidate)` is true.

    After `attempts` candidates the last one is returned even if it collided;
    with 2**40 combinations that case is treated as negligible.
    """
    candidate = generate_id(length)
    if exists is None:
        return candidate
    for _ in range(max(attempts, 1) - 1):
        if not exists(candidate):
            return candidate
        candidate = generate_id(length)
    return candidate


def record_id_for(group_id: str, index: int, total: int) -> str:
    """Per-file record key: the group id itself for a single file, else `{group}-{n}` (1-based)."""
    if total <= 1:
        return group_id
    return f"{group_id}-{index}"
