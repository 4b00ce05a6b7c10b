import typing as ty

import numba
import numpy as np
import pandas as pd
import strax

from .common import (ConfigurationError, check_harmonic, MINIMUM_SIGNIFICANT_VALUE,
                     N_HARMONIC_SLOTS, NO_HARMONIC)
from .harmonics import HarmonicMask

export, __all__ = strax.exporter()


@export
class HarmonicVector:
    """Q vector: one (X, Y) pair per active harmonic plus a quality flag.

    The harmonics can be given as a number of harmonics n, meaning the
    harmonics 1, 2, ..., n, or as an explicit harmonic map, for instance
    four harmonics [2, 4, 6, 8]. Components are indexed by the external
    harmonic number and are always zero for inactive harmonics.
    """

    def __init__(self,
                 name: str = '',
                 n_harmonics: ty.Optional[int] = None,
                 harmonic_map: ty.Optional[ty.Sequence[int]] = None):
        self.name = name
        self._qx = np.zeros(N_HARMONIC_SLOTS, dtype=np.float64)
        self._qy = np.zeros(N_HARMONIC_SLOTS, dtype=np.float64)
        if harmonic_map is not None:
            harmonic_map = list(harmonic_map)
            if n_harmonics is not None:
                if n_harmonics > len(harmonic_map):
                    raise ConfigurationError(
                        f'Harmonic map {harmonic_map} is too short for '
                        f'{n_harmonics} harmonics')
                harmonic_map = harmonic_map[:n_harmonics]
            self._mask = HarmonicMask(harmonic_map)
        else:
            self._mask = HarmonicMask.from_range(n_harmonics or 0)
        self.good_quality = False

    @property
    def harmonic_mask(self) -> HarmonicMask:
        return self._mask.copy()

    @property
    def highest_harmonic(self) -> int:
        return self._mask.highest

    @property
    def n_harmonics(self) -> int:
        return len(self._mask)

    def harmonic_map(self) -> ty.List[int]:
        return list(self._mask)

    def is_active(self, harmonic: int) -> bool:
        return harmonic in self._mask

    def same_structure(self, other: 'HarmonicVector') -> bool:
        return (self.highest_harmonic == other.highest_harmonic
                and self._mask == other._mask)

    def activate(self, harmonic: int):
        """Activate harmonic, its components start at zero.

        Activating an already active harmonic keeps its components.
        """
        harmonic = check_harmonic(harmonic)
        if harmonic in self._mask:
            return
        self._mask.add(harmonic)
        self._qx[harmonic] = 0.
        self._qy[harmonic] = 0.

    def harmonics(self) -> ty.Iterator[int]:
        """Active harmonics in ascending order"""
        return iter(self._mask)

    def first_harmonic(self) -> int:
        return self._mask.first()

    def next_harmonic(self, harmonic: int) -> int:
        return self._mask.next(harmonic)

    def qx(self, harmonic: int) -> float:
        return float(self._qx[check_harmonic(harmonic)])

    def qy(self, harmonic: int) -> float:
        return float(self._qy[check_harmonic(harmonic)])

    def _check_active(self, harmonic):
        harmonic = check_harmonic(harmonic)
        if harmonic not in self._mask:
            raise ConfigurationError(
                f'Harmonic {harmonic} is not active in Q vector {self.name!r}, '
                f'active harmonics are {self.harmonic_map()}')
        return harmonic

    def set_qx(self, harmonic: int, value: float):
        self._qx[self._check_active(harmonic)] = value

    def set_qy(self, harmonic: int, value: float):
        self._qy[self._check_active(harmonic)] = value

    def set_good(self, good: bool):
        self.good_quality = bool(good)

    def length(self, harmonic: int) -> float:
        return float(np.hypot(self.qx(harmonic), self.qy(harmonic)))

    def is_significant(self, harmonic: int) -> bool:
        """Whether at least one component of harmonic reaches MINIMUM_SIGNIFICANT_VALUE"""
        return (abs(self.qx(harmonic)) >= MINIMUM_SIGNIFICANT_VALUE
                or abs(self.qy(harmonic)) >= MINIMUM_SIGNIFICANT_VALUE)

    def qx_norm(self, harmonic: int) -> float:
        """X component of the unit vector, the raw component if not significant"""
        if not self.is_significant(harmonic):
            return self.qx(harmonic)
        return self.qx(harmonic) / self.length(harmonic)

    def qy_norm(self, harmonic: int) -> float:
        """Y component of the unit vector, the raw component if not significant"""
        if not self.is_significant(harmonic):
            return self.qy(harmonic)
        return self.qy(harmonic) / self.length(harmonic)

    def normalize(self):
        """Normalize every active harmonic to unit length.

        Harmonics with both components below MINIMUM_SIGNIFICANT_VALUE are
        kept as they are.
        """
        harmonics = np.array(self.harmonic_map(), dtype=np.int64)
        qx, qy = self._qx[harmonics], self._qy[harmonics]
        significant = ((np.abs(qx) >= MINIMUM_SIGNIFICANT_VALUE)
                       | (np.abs(qy) >= MINIMUM_SIGNIFICANT_VALUE))
        harmonics = harmonics[significant]
        lengths = np.hypot(qx[significant], qy[significant])
        self._qx[harmonics] /= lengths
        self._qy[harmonics] /= lengths

    def reset(self):
        """Zero the components and flag the vector as bad, keeps the harmonic structure"""
        self._qx[:] = 0.
        self._qy[:] = 0.
        self.good_quality = False

    def copy_from(self, other: 'HarmonicVector', change_name: bool = False):
        """Copy the values of other into this vector.

        :param other: Q vector with exactly the same harmonic structure
        :param change_name: also take over the name of other
        """
        if not self.same_structure(other):
            raise ConfigurationError(
                'You requested set a Q vector with the values of other Q vector '
                f'but the harmonic structures do not match: {self.harmonic_map()} '
                f'({self.name!r}) vs {other.harmonic_map()} ({other.name!r})')
        self._qx[:] = other._qx
        self._qy[:] = other._qy
        self.good_quality = other.good_quality
        if change_name:
            self.name = other.name

    def event_plane(self, harmonic: int) -> float:
        """Event plane angle atan2(Qy, Qx) / harmonic, 0 for non significant components"""
        qx, qy = self.qx(harmonic), self.qy(harmonic)
        if abs(qx) < MINIMUM_SIGNIFICANT_VALUE and abs(qy) < MINIMUM_SIGNIFICANT_VALUE:
            return 0.
        return float(np.arctan2(qy, qx) / harmonic)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per active harmonic with its components and event plane"""
        harmonics = self.harmonic_map()
        return pd.DataFrame(dict(
            harmonic=np.array(harmonics, dtype=np.int16),
            qx=[self.qx(h) for h in harmonics],
            qy=[self.qy(h) for h in harmonics],
            event_plane=[self.event_plane(h) for h in harmonics],
        ))

    def _header(self):
        return (f'Qn vector {self.name!r}\t'
                f'quality: {"good" if self.good_quality else "bad"}')

    def __str__(self):
        lines = [self._header()]
        for harmonic in self.harmonics():
            lines.append(f'\t\tharmonic {harmonic}\t'
                         f'QX: {self.qx(harmonic):.6g}\tQY: {self.qy(harmonic):.6g}')
        return '\n'.join(lines)

    def __repr__(self):
        return f'{self.__class__.__name__}({self.name!r}, harmonic_map={self.harmonic_map()})'


@export
class AccumulatingVector(HarmonicVector):
    """Q vector under construction from the data vectors of one event.

    Keeps the sum of weights and the number of contributions next to the
    components. Components change only through accumulation, normalization
    or reset, direct setting is forbidden.
    """

    def __init__(self, name='', n_harmonics=None, harmonic_map=None):
        super().__init__(name, n_harmonics=n_harmonics, harmonic_map=harmonic_map)
        self.sum_of_weights = 0.
        self.n = 0

    @classmethod
    def like(cls, qn_vector: HarmonicVector, name=''):
        """Empty building vector with the harmonic structure of qn_vector"""
        return cls(name, harmonic_map=qn_vector.harmonic_map())

    def set_qx(self, harmonic, value):
        raise ConfigurationError('You are using a forbidden function for a build Q vector')

    def set_qy(self, harmonic, value):
        raise ConfigurationError('You are using a forbidden function for a build Q vector')

    def add_sample(self, phi: float, weight: float = 1.):
        """Accumulate a single data vector with azimuthal angle phi"""
        harmonics = np.array(self.harmonic_map(), dtype=np.int64)
        self._qx[harmonics] += weight * np.cos(harmonics * phi)
        self._qy[harmonics] += weight * np.sin(harmonics * phi)
        self.sum_of_weights += weight
        self.n += 1

    def fill(self, phi: np.ndarray, weight: ty.Optional[np.ndarray] = None):
        """Accumulate many data vectors at once

        :param phi: array of azimuthal angles
        :param weight: array of weights, same length as phi. Unit weights
            if not given.
        """
        phi = np.asarray(phi, dtype=np.float64)
        if weight is None:
            weight = np.ones(len(phi), dtype=np.float64)
        weight = np.asarray(weight, dtype=np.float64)
        if len(phi) != len(weight):
            raise ValueError(f'Got {len(phi)} angles but {len(weight)} weights')
        harmonics = np.array(self.harmonic_map(), dtype=np.int64)
        _accumulate_harmonic_sums(phi, weight, harmonics, self._qx, self._qy)
        self.sum_of_weights += float(weight.sum())
        self.n += len(phi)

    def add(self, other: 'AccumulatingVector'):
        """Add the sums of other, used to merge sub-detector contributions"""
        if not self.same_structure(other):
            raise ConfigurationError(
                'You requested to add two build Q vectors with different harmonic '
                f'structures: {self.harmonic_map()} vs {other.harmonic_map()}')
        harmonics = np.array(self.harmonic_map(), dtype=np.int64)
        self._qx[harmonics] += other._qx[harmonics]
        self._qy[harmonics] += other._qy[harmonics]
        self.sum_of_weights += other.sum_of_weights
        self.n += other.n

    def normalize_over_weight(self):
        """Qn = Qn / M, nothing done if M is not significant"""
        if self.sum_of_weights < MINIMUM_SIGNIFICANT_VALUE:
            return
        self._scale_active(1. / self.sum_of_weights)

    def normalize_over_sqrt_weight(self):
        """Qn = Qn / sqrt(M), nothing done if M is not significant"""
        if self.sum_of_weights < MINIMUM_SIGNIFICANT_VALUE:
            return
        self._scale_active(1. / np.sqrt(self.sum_of_weights))

    def _scale_active(self, factor):
        harmonics = np.array(self.harmonic_map(), dtype=np.int64)
        self._qx[harmonics] *= factor
        self._qy[harmonics] *= factor

    def copy_from(self, other: HarmonicVector, change_name: bool = False):
        # The name of a building vector is never taken over
        super().copy_from(other, change_name=False)
        if isinstance(other, AccumulatingVector):
            self.sum_of_weights = other.sum_of_weights
            self.n = other.n
        else:
            self.sum_of_weights = 0.
            self.n = 0

    def reset(self):
        super().reset()
        self.sum_of_weights = 0.
        self.n = 0

    def _header(self):
        return (f'building Qn vector {self.name!r}\tN: {self.n}\t'
                f'Sum w: {self.sum_of_weights:.6g}\t'
                f'quality: {"good" if self.good_quality else "bad"}')


@numba.njit(cache=True, nogil=True)
def _accumulate_harmonic_sums(phi, weight, harmonics, qx, qy):
    for i in range(len(phi)):
        for h in harmonics:
            qx[h] += weight[i] * np.cos(h * phi[i])
            qy[h] += weight[i] * np.sin(h * phi[i])
