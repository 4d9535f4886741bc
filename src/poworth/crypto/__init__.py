"""Cryptographic primitives — commitment hashing, salt generation."""

from poworth.crypto.commitment import (
    compute_commitment,
    generate_salt,
    matches_commitment,
    verify_commitment,
)

__all__ = [
    "compute_commitment",
    "generate_salt",
    "matches_commitment",
    "verify_commitment",
]
