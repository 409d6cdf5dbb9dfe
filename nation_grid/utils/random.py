"""
Process-wide random source.

Code that is not handed an explicit generator draws from the shared Alea
instance here. Unless a seed has been set, the instance is seeded from a
fresh UUID so that independent signups do not repeat each other.
"""

import uuid

from ..core.alea_prng import AleaPRNG

# Global PRNG instance
_prng = None


def set_random_seed(seed) -> None:
    """
    Reseed the shared PRNG.

    Args:
        seed: Seed string or number
    """
    global _prng
    _prng = AleaPRNG(seed)


def new_seed() -> str:
    """Return a fresh seed string suitable for storing with a country."""
    return uuid.uuid4().hex[:12]


def get_prng() -> AleaPRNG:
    """
    Get the shared PRNG instance.

    Returns:
        AleaPRNG instance
    """
    global _prng
    if _prng is None:
        _prng = AleaPRNG(new_seed())
    return _prng
