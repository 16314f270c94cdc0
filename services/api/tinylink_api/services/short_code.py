"""Deterministic short code generation.

A code is derived from SHA-256 over ``"{url}|{workspace_id}"`` (plus
``"|{salt}"`` on retries), encoded in Base58 and fitted to a fixed length.
The same (URL, workspace, salt) always yields the same code.
"""

import hashlib

from tinylink_api.core.exceptions import InvalidInputError

# Base58: no 0, O, I or l
ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
BASE = len(ALPHABET)

DEFAULT_CODE_LENGTH = 10
HASH_BYTES_TO_USE = 8
SEPARATOR = "|"


def encode_int(value: int) -> str:
    """Encode a non-negative integer in Base58."""
    if value < 0:
        raise InvalidInputError("Value must be non-negative")
    if value == 0:
        return ALPHABET[0]

    digits = []
    while value > 0:
        value, remainder = divmod(value, BASE)
        digits.append(ALPHABET[remainder])
    return "".join(reversed(digits))


def encode(data: bytes, length: int) -> str:
    """Encode the first 8 bytes of ``data`` to exactly ``length`` characters.

    Short results are left-padded with the zero symbol ``1``; long ones are
    truncated.
    """
    if not data:
        raise InvalidInputError("Hash must not be empty")
    if length <= 0:
        raise InvalidInputError("Length must be positive")

    value = int.from_bytes(data[:HASH_BYTES_TO_USE], "big")
    encoded = encode_int(value)
    if len(encoded) < length:
        return ALPHABET[0] * (length - len(encoded)) + encoded
    return encoded[:length]


def generate_short_code(
    canonical_url: str,
    workspace_id: int,
    salt: int = 0,
    length: int = DEFAULT_CODE_LENGTH,
) -> str:
    """Derive the short code for a canonical URL in a workspace."""
    if not canonical_url or not canonical_url.strip():
        raise InvalidInputError("Canonical URL must not be empty")
    if salt < 0:
        raise InvalidInputError(f"Retry salt must be non-negative, got {salt}")
    if length <= 0:
        raise InvalidInputError(f"Code length must be positive, got {length}")

    hash_input = f"{canonical_url}{SEPARATOR}{workspace_id}"
    if salt > 0:
        hash_input = f"{hash_input}{SEPARATOR}{salt}"

    digest = hashlib.sha256(hash_input.encode("utf-8")).digest()
    return encode(digest, length)
