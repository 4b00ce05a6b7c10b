import numpy as np
import strax

export, __all__ = strax.exporter()
__all__ += ['data_vector_dtype']

data_vector_dtype = [
    (('Channel number, -1 for detectors without channels', 'channel'), np.int32),
    (('Azimuthal angle [rad]', 'phi'), np.float64),
    (('Weight as delivered by the detector', 'weight'), np.float64),
    (('Weight after channel gain equalization', 'equalized_weight'), np.float64),
]


@export
class DataVectorBank:
    """Data vectors (angle, weight, channel) of the current event.

    Backed by a structured numpy array which grows when needed and is
    reused from one event to the next.
    """

    def __init__(self, initial_size=256):
        self._buffer = np.zeros(max(int(initial_size), 1), dtype=data_vector_dtype)
        self._n = 0

    def __len__(self):
        return self._n

    @property
    def data(self) -> np.ndarray:
        """View on the data vectors of the current event"""
        return self._buffer[:self._n]

    def _reserve(self, n_extra):
        needed = self._n + n_extra
        if needed <= len(self._buffer):
            return
        size = len(self._buffer)
        while size < needed:
            size *= 2
        new_buffer = np.zeros(size, dtype=data_vector_dtype)
        new_buffer[:self._n] = self._buffer[:self._n]
        self._buffer = new_buffer

    def append(self, phi, weight=1., channel=-1):
        self._reserve(1)
        i = self._n
        self._buffer['channel'][i] = channel
        self._buffer['phi'][i] = phi
        self._buffer['weight'][i] = weight
        self._buffer['equalized_weight'][i] = weight
        self._n += 1

    def extend(self, phi, weight=None, channel=None):
        """Add many data vectors, unit weights and no channel unless given"""
        phi = np.asarray(phi, dtype=np.float64)
        n_new = len(phi)
        weight = np.ones(n_new) if weight is None else np.asarray(weight, dtype=np.float64)
        channel = np.full(n_new, -1) if channel is None else np.asarray(channel)
        if not len(weight) == len(channel) == n_new:
            raise ValueError(f'Got {n_new} angles, {len(weight)} weights '
                             f'and {len(channel)} channels')
        self._reserve(n_new)
        new = self._buffer[self._n:self._n + n_new]
        new['channel'] = channel
        new['phi'] = phi
        new['weight'] = weight
        new['equalized_weight'] = weight
        self._n += n_new

    def clear(self):
        self._buffer[:self._n] = 0
        self._n = 0
