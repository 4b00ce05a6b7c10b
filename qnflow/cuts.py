"""
Event selection cuts of detector configurations

Each cut looks at one event variable. A detector configuration only
processes the events passing all of its cuts:

 cuts = qnflow.CutsSet([qnflow.CutWithin(0, 0., 80.),
                        qnflow.CutAbove('n_tracks', 10)])
 tpc = qnflow.TracksDetectorConfiguration('TPC', event_classes, n_harmonics=2,
                                          cuts=cuts)
"""
import typing as ty
from abc import ABC, abstractmethod

import numpy as np
import strax

export, __all__ = strax.exporter()


@export
class Cut(ABC):
    """Selection on the event variable stored under var_id"""
    cut_name = ''

    def __init__(self, var_id):
        self.var_id = var_id

    def is_selected(self, variable_container) -> bool:
        value = variable_container[self.var_id]
        if not np.isfinite(value):
            return False
        return bool(self.cut_by(value))

    @abstractmethod
    def cut_by(self, value) -> bool:
        pass


@export
class CutWithin(Cut):
    """low <= value < high"""
    cut_name = 'within'

    def __init__(self, var_id, low: float, high: float):
        if not low < high:
            raise ValueError(f'Empty range [{low}, {high}) for cut on {var_id!r}')
        super().__init__(var_id)
        self.low, self.high = low, high

    def cut_by(self, value):
        return self.low <= value < self.high

    def __repr__(self):
        return f'CutWithin({self.var_id!r}, {self.low}, {self.high})'


@export
class CutAbove(Cut):
    """value > threshold"""
    cut_name = 'above'

    def __init__(self, var_id, threshold: float):
        super().__init__(var_id)
        self.threshold = threshold

    def cut_by(self, value):
        return value > self.threshold

    def __repr__(self):
        return f'CutAbove({self.var_id!r}, {self.threshold})'


@export
class CutBelow(Cut):
    """value < threshold"""
    cut_name = 'below'

    def __init__(self, var_id, threshold: float):
        super().__init__(var_id)
        self.threshold = threshold

    def cut_by(self, value):
        return value < self.threshold

    def __repr__(self):
        return f'CutBelow({self.var_id!r}, {self.threshold})'


@export
class CutsSet:
    """All cuts must pass, an empty set selects every event"""

    def __init__(self, cuts: ty.Sequence[Cut] = ()):
        self.cuts = list(cuts)

    def add(self, cut: Cut):
        self.cuts.append(cut)

    def is_selected(self, variable_container) -> bool:
        return all(cut.is_selected(variable_container) for cut in self.cuts)

    def __len__(self):
        return len(self.cuts)

    def __iter__(self):
        return iter(self.cuts)

    def __repr__(self):
        return f'CutsSet({self.cuts})'
