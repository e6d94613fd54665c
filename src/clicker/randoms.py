"""Process-wide non-cryptographic RNG.

Seeded once at import. Delays, cooldowns and payload nonce bytes all draw from
this generator unless a caller injects its own (tests do).
"""
import random

_rng = random.Random()


def rng() -> random.Random:
    return _rng
