"""
Stable hashing and seeded jitter for deterministic graph decisions.

Every place the builder would otherwise reach for randomness (tie-breaks,
exploration picks, rotation offsets, alternative jitter) derives its value
from ``fnv1a()`` over stable string keys instead.  Python's built-in
``hash()`` is salted per process (``PYTHONHASHSEED``) and must never be used
for these decisions.

FNV-1a (32-bit)
---------------
    h = 2166136261
    for each UTF-16 code unit c of the key:
        h = ((h XOR c) * 16777619) mod 2**32

Hashing UTF-16 code units (rather than UTF-8 bytes) keeps the values equal
to those produced by the site's JavaScript tooling for the same keys.
"""

from __future__ import annotations

import random

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
_MASK_32 = 0xFFFFFFFF

# Separator used when hashing a directed (source, target) pair.
PAIR_SEPARATOR = "→"


def fnv1a(key: str) -> int:
    """Return the unsigned 32-bit FNV-1a hash of ``key``."""
    h = FNV_OFFSET_BASIS
    data = key.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h ^ unit) * FNV_PRIME) & _MASK_32
    return h


def pair_hash(source: str, target: str) -> int:
    """Stable hash of a directed ``source → target`` pair."""
    return fnv1a(f"{source}{PAIR_SEPARATOR}{target}")


def seeded_rng(seed: str) -> random.Random:
    """Return a ``random.Random`` whose state depends only on ``seed``.

    The generator is seeded with the integer ``fnv1a(seed)`` so the stream is
    identical across processes, platforms and interpreter versions that share
    the Mersenne Twister implementation.
    """
    return random.Random(fnv1a(seed))
