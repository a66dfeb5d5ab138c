"""Store key derivation.

Keys have the shape ``prefix:action:hash`` where ``hash`` is a truncated
base64 MD5 digest of the subject. The digest only needs to spread subjects
evenly across the key space; it is not a security boundary.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from hashlib import md5
from typing import Any

from trafficjam.core.config import MAX_HASH_LENGTH


def subject_to_bytes(subject: Any) -> bytes:
    """Serialize a subject value to bytes.

    Args:
        subject: Bytes are used as-is, strings are UTF-8 encoded and any other
            value is encoded through ``str()``.

    Returns:
        Byte representation fed to the digest.
    """

    if isinstance(subject, (bytes, bytearray, memoryview)):
        return bytes(subject)
    if isinstance(subject, str):
        return subject.encode("utf-8")
    return str(subject).encode("utf-8")


@dataclass(frozen=True)
class KeyDeriver:
    """Turn (action, subject) pairs into short, fixed-length store keys.

    Attributes:
        prefix: Namespace prepended to every key.
        hash_length: Number of digest characters kept.
    """

    prefix: str = "tj"
    hash_length: int = 12

    def __post_init__(self) -> None:
        if not 1 <= self.hash_length <= MAX_HASH_LENGTH:
            raise ValueError(f"hash_length must be between 1 and {MAX_HASH_LENGTH}")

    def digest(self, subject: Any) -> str:
        """Return the truncated base64 MD5 digest of a subject."""

        raw = md5(subject_to_bytes(subject), usedforsecurity=False).digest()
        return base64.b64encode(raw).decode("ascii")[: self.hash_length]

    def derive(self, action: str, subject: Any) -> str:
        """Build the store key for an action/subject pair.

        Args:
            action: Quota type identifier (e.g. ``"login"``).
            subject: Who the quota applies to (e.g. a user id).

        Returns:
            Key string ``prefix:action:hash``.
        """

        return ":".join((self.prefix, action, self.digest(subject)))
