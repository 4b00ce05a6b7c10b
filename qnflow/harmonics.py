import typing as ty

import strax

from .common import check_harmonic, MAX_HARMONIC_NUMBER, NO_HARMONIC

export, __all__ = strax.exporter()


@export
class HarmonicMask:
    """Fixed size set of active harmonic numbers.

    Harmonic h is stored as bit h of a 16 bit integer (bit 0 unused), which
    gives constant time membership tests. Iteration is always in ascending
    harmonic order whatever order the harmonics were added in.
    """

    __slots__ = ('_bits',)

    def __init__(self, harmonics: ty.Iterable[int] = ()):
        self._bits = 0
        for harmonic in harmonics:
            self.add(harmonic)

    @classmethod
    def from_range(cls, n_harmonics: int):
        """Mask with the contiguous harmonics 1, 2, ..., n_harmonics"""
        return cls(range(1, n_harmonics + 1))

    @property
    def value(self) -> int:
        return self._bits

    @property
    def highest(self) -> int:
        """Largest active harmonic, 0 for an empty mask"""
        return self._bits.bit_length() - 1 if self._bits else 0

    def add(self, harmonic: int):
        harmonic = check_harmonic(harmonic)
        self._bits |= 1 << harmonic

    def __contains__(self, harmonic) -> bool:
        if not 1 <= harmonic <= MAX_HARMONIC_NUMBER:
            return False
        return bool(self._bits & (1 << harmonic))

    def __iter__(self):
        for harmonic in range(1, self.highest + 1):
            if self._bits & (1 << harmonic):
                yield harmonic

    def __len__(self):
        return bin(self._bits).count('1')

    def __eq__(self, other):
        if not isinstance(other, HarmonicMask):
            return NotImplemented
        return self._bits == other._bits

    def __hash__(self):
        return hash(self._bits)

    def __repr__(self):
        return f'HarmonicMask({list(self)})'

    def first(self) -> int:
        for harmonic in self:
            return harmonic
        return NO_HARMONIC

    def next(self, harmonic: int) -> int:
        """Next active harmonic above harmonic, NO_HARMONIC when exhausted"""
        for candidate in range(max(harmonic, 0) + 1, self.highest + 1):
            if self._bits & (1 << candidate):
                return candidate
        return NO_HARMONIC

    def copy(self):
        new = HarmonicMask()
        new._bits = self._bits
        return new
