"""
Seedable Alea pseudo-random generator.

Territory growth draws all of its randomness from an instance of this class
so that a nation can be regenerated from the seed stored with its country.
Based on Johannes Baagøe's Alea algorithm.
"""

_TWO_POW_32 = 0x100000000
_TWO_POW_NEG_32 = 2.3283064365386963e-10


def _uint32(n):
    """Convert to unsigned 32-bit integer."""
    return int(n) & 0xFFFFFFFF


def _make_mash():
    n = 0xEFC8249D

    def mash(data):
        nonlocal n
        for char in str(data):
            n += ord(char)
            h = 0.02519603282416938 * n
            n = _uint32(h)
            h -= n
            h *= n
            n = _uint32(h)
            h -= n
            n += h * _TWO_POW_32
        return _uint32(n) * _TWO_POW_NEG_32

    return mash


class AleaPRNG:
    """
    Alea PRNG with helpers for uniform integer and element picks.

    Accepts a string, a number, or an iterable of either as the seed.
    """

    def __init__(self, seed):
        self.seed = seed
        self.call_count = 0

        if hasattr(seed, "__iter__") and not isinstance(seed, str):
            parts = list(seed)
        else:
            parts = [seed]

        mash = _make_mash()
        self.s0 = mash(" ")
        self.s1 = mash(" ")
        self.s2 = mash(" ")
        self.c = 1

        for part in parts:
            self.s0 = self._fold(self.s0 - mash(part))
            self.s1 = self._fold(self.s1 - mash(part))
            self.s2 = self._fold(self.s2 - mash(part))

    @staticmethod
    def _fold(value):
        return value + 1 if value < 0 else value

    def random(self):
        """Generate next random number in [0, 1)."""
        self.call_count += 1
        t = 2091639 * self.s0 + self.c * _TWO_POW_NEG_32
        self.s0 = self.s1
        self.s1 = self.s2
        self.c = int(t)
        self.s2 = t - self.c
        return self.s2

    def randrange(self, stop):
        """Uniform integer in [0, stop)."""
        if stop <= 0:
            raise ValueError(f"randrange() stop must be positive, got {stop}")
        return int(self.random() * stop)

    def choice(self, seq):
        """Choose a random element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[self.randrange(len(seq))]
