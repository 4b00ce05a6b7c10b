import typing as ty

import numpy as np
import strax

export, __all__ = strax.exporter()
__all__ += ['OUT_OF_RANGE_BIN']

# Bin handle of events outside the event class binning
OUT_OF_RANGE_BIN = -1


@export
class EventClassVariable:
    """One event level variable (e.g. centrality) and its binning

    :param var_id: key of the variable in the event variable container,
        an index for arrays or a key for mappings
    :param label: human readable name
    :param bin_edges: monotonically increasing bin edges
    """

    def __init__(self, var_id, label: str, bin_edges: ty.Sequence[float]):
        bin_edges = np.asarray(bin_edges, dtype=np.float64)
        if bin_edges.ndim != 1 or len(bin_edges) < 2:
            raise ValueError(f'{label} needs at least two bin edges, got {bin_edges}')
        if np.any(np.diff(bin_edges) <= 0):
            raise ValueError(f'Bin edges of {label} must be increasing, got {bin_edges}')
        self.var_id = var_id
        self.label = label
        self.bin_edges = bin_edges

    @classmethod
    def from_range(cls, var_id, label, n_bins, low, high):
        return cls(var_id, label, np.linspace(low, high, n_bins + 1))

    @property
    def n_bins(self) -> int:
        return len(self.bin_edges) - 1

    @property
    def bin_centers(self) -> np.ndarray:
        return (self.bin_edges[1:] + self.bin_edges[:-1]) / 2

    def find_bin(self, value) -> int:
        """Bin of value, OUT_OF_RANGE_BIN outside [first edge, last edge)"""
        if not np.isfinite(value):
            return OUT_OF_RANGE_BIN
        if value < self.bin_edges[0] or value >= self.bin_edges[-1]:
            return OUT_OF_RANGE_BIN
        return int(np.searchsorted(self.bin_edges, value, side='right') - 1)

    def __repr__(self):
        return (f'EventClassVariable({self.var_id!r}, {self.label!r}, '
                f'n_bins={self.n_bins}, range=[{self.bin_edges[0]}, {self.bin_edges[-1]}))')


@export
class EventClassVariablesSet:
    """Set of event class variables spanning the calibration bins.

    The bins of all variables are combined into a single flat bin number
    (row major, first variable slowest), the handle used by every
    calibration histogram.
    """

    def __init__(self, variables: ty.Sequence[EventClassVariable]):
        self.variables = list(variables)
        if not self.variables:
            raise ValueError('At least one event class variable is needed')

    def __len__(self):
        return len(self.variables)

    def __iter__(self):
        return iter(self.variables)

    @property
    def shape(self) -> ty.Tuple[int, ...]:
        return tuple(variable.n_bins for variable in self.variables)

    @property
    def n_bins(self) -> int:
        return int(np.prod(self.shape))

    @property
    def labels(self) -> ty.List[str]:
        return [variable.label for variable in self.variables]

    def get_bin(self, variable_container) -> int:
        """Flat bin of the event described by variable_container

        :param variable_container: event variables, indexable by the var_id
            of each event class variable
        :return: flat bin number or OUT_OF_RANGE_BIN
        """
        indices = []
        for variable in self.variables:
            index = variable.find_bin(variable_container[variable.var_id])
            if index == OUT_OF_RANGE_BIN:
                return OUT_OF_RANGE_BIN
            indices.append(index)
        return int(np.ravel_multi_index(tuple(indices), self.shape))

    def bin_centers(self, flat_bin: int) -> ty.Dict[str, float]:
        """Center of each variable for flat_bin"""
        indices = np.unravel_index(flat_bin, self.shape)
        return {variable.label: float(variable.bin_centers[i])
                for variable, i in zip(self.variables, indices)}
