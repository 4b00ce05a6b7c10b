"""In-memory calibration storage.

Profiles keep, per calibration bin, the number of entries, the sum and the
sum of squares of the filled values. Their state is a plain dict of numpy
arrays registered by name in a calibration list (itself a dict) so that the
output of one processing pass can be attached as the input of the next one,
and the lists of concurrent passes can be merged.
"""
import logging
import typing as ty

import numpy as np
import pandas as pd
import strax

from .common import (ConfigurationError, DEFAULT_MIN_ENTRIES_TO_VALIDATE,
                     MINIMUM_SIGNIFICANT_VALUE, N_HARMONIC_SLOTS, check_harmonic, safe_divide)
from .event_classes import EventClassVariablesSet, OUT_OF_RANGE_BIN

export, __all__ = strax.exporter()
__all__ += ['SUMMABLE_FIELDS', 'X_COMPONENT', 'Y_COMPONENT']

log = logging.getLogger('qnflow.histograms')

# State entries which add up when merging calibration lists
SUMMABLE_FIELDS = ('sum_values', 'sum_squares', 'entries', 'counts')

X_COMPONENT = 0
Y_COMPONENT = 1


def _spread_or_error(sum_values, sum_squares, entries, error_mode):
    """Mean and spread ('s') or error on the mean ('') of profile bins"""
    # Entries are counts, empty bins get 0
    entries = np.asarray(entries, dtype=np.float64)
    mean = safe_divide(sum_values, entries)
    mean_of_squares = safe_divide(sum_squares, entries)
    spread = np.sqrt(np.clip(mean_of_squares - mean ** 2, 0, None))
    if error_mode == 's':
        return mean, spread
    return mean, safe_divide(spread, np.sqrt(entries))


class ProfileBase:
    """Shared bookkeeping of the calibration profiles"""
    kind = ''

    def __init__(self, name: str, event_classes: EventClassVariablesSet, error_mode='s'):
        if error_mode not in ('s', ''):
            raise ValueError(f"Error mode should be 's' (spread) or '' (error on the mean), "
                             f"got {error_mode!r}")
        self.name = name
        self.event_classes = event_classes
        self.error_mode = error_mode
        self.min_entries = DEFAULT_MIN_ENTRIES_TO_VALIDATE
        self._state = None

    def set_entries_threshold(self, min_entries: int):
        self.min_entries = int(min_entries)

    def get_bin(self, variable_container) -> int:
        return self.event_classes.get_bin(variable_container)

    def _find_input(self, input_list):
        if not input_list or self.name not in input_list:
            return None
        state = input_list[self.name]
        if state.get('kind') != self.kind:
            raise ConfigurationError(
                f'Histogram {self.name!r} in the input list is a {state.get("kind")!r} '
                f'histogram, expected {self.kind!r}')
        n_bins = state['entries'].shape[-1]
        if n_bins != self.event_classes.n_bins:
            raise ConfigurationError(
                f'Histogram {self.name!r} in the input list has {n_bins} event class '
                f'bins, the configured binning has {self.event_classes.n_bins}')
        return state

    def _register(self, calibration_list, state):
        if self.name in calibration_list:
            raise ConfigurationError(
                f'A histogram named {self.name!r} is already in the calibration list')
        calibration_list[self.name] = state
        self._state = state


@export
class ProfileComponents(ProfileBase):
    """X and Y profiles of every harmonic of a Q vector, per event class bin"""
    kind = 'components'

    def create_components_profile_histograms(self, calibration_list: dict,
                                             harmonic_map: ty.Sequence[int]) -> bool:
        """Create empty profiles for harmonic_map and register them in calibration_list"""
        shape = (N_HARMONIC_SLOTS, 2, self.event_classes.n_bins)
        state = dict(
            kind=self.kind,
            harmonic_map=np.array([check_harmonic(h) for h in harmonic_map], dtype=np.int16),
            sum_values=np.zeros(shape, dtype=np.float64),
            sum_squares=np.zeros(shape, dtype=np.float64),
            entries=np.zeros(shape, dtype=np.int64),
        )
        self._register(calibration_list, state)
        return True

    def attach_histograms(self, input_list: ty.Optional[dict],
                          harmonic_map: ty.Optional[ty.Sequence[int]] = None) -> bool:
        """Bind to the profiles of a previous pass, False if they are not in input_list

        :param harmonic_map: harmonics the profiles must have been created
            for, not checked if not given
        """
        state = self._find_input(input_list)
        if state is None:
            return False
        if harmonic_map is not None:
            stored = [int(h) for h in state['harmonic_map']]
            if stored != [int(h) for h in harmonic_map]:
                raise ConfigurationError(
                    f'Histogram {self.name!r} in the input list was created for harmonics '
                    f'{stored}, expected {list(harmonic_map)}')
        self._state = {k: np.array(v, copy=True) if isinstance(v, np.ndarray) else v
                       for k, v in state.items()}
        log.debug(f'Attached {self.name!r} with {int(self.entry_count_total())} entries')
        return True

    @property
    def harmonic_map(self) -> ty.List[int]:
        return [int(h) for h in self._state['harmonic_map']]

    def _check_harmonic(self, harmonic):
        if harmonic not in self.harmonic_map:
            raise ConfigurationError(
                f'Harmonic {harmonic} is not handled by {self.name!r}, '
                f'harmonics are {self.harmonic_map}')

    def _fill(self, harmonic, component, variable_container, value):
        self._check_harmonic(harmonic)
        bin_number = self.get_bin(variable_container)
        if bin_number == OUT_OF_RANGE_BIN:
            return
        self._state['sum_values'][harmonic, component, bin_number] += value
        self._state['sum_squares'][harmonic, component, bin_number] += value ** 2
        self._state['entries'][harmonic, component, bin_number] += 1

    def fill_x(self, harmonic: int, variable_container, value: float):
        self._fill(harmonic, X_COMPONENT, variable_container, value)

    def fill_y(self, harmonic: int, variable_container, value: float):
        self._fill(harmonic, Y_COMPONENT, variable_container, value)

    def _bin(self, harmonic, component, bin_number):
        if bin_number == OUT_OF_RANGE_BIN:
            return 0., 0.
        index = (harmonic, component, bin_number)
        mean, error = _spread_or_error(self._state['sum_values'][index],
                                       self._state['sum_squares'][index],
                                       self._state['entries'][index],
                                       self.error_mode)
        return float(mean), float(error)

    def x_bin_content(self, harmonic: int, bin_number: int) -> float:
        return self._bin(harmonic, X_COMPONENT, bin_number)[0]

    def y_bin_content(self, harmonic: int, bin_number: int) -> float:
        return self._bin(harmonic, Y_COMPONENT, bin_number)[0]

    def x_bin_error(self, harmonic: int, bin_number: int) -> float:
        return self._bin(harmonic, X_COMPONENT, bin_number)[1]

    def y_bin_error(self, harmonic: int, bin_number: int) -> float:
        return self._bin(harmonic, Y_COMPONENT, bin_number)[1]

    def entry_count(self, bin_number: int, harmonic: ty.Optional[int] = None) -> int:
        """Entries of bin_number, counted on the lowest harmonic if none is given"""
        if bin_number == OUT_OF_RANGE_BIN or not self.harmonic_map:
            return 0
        if harmonic is None:
            harmonic = self.harmonic_map[0]
        return int(self._state['entries'][harmonic, X_COMPONENT, bin_number])

    def entry_count_total(self) -> int:
        if not self.harmonic_map:
            return 0
        return int(self._state['entries'][self.harmonic_map[0], X_COMPONENT].sum())

    def bin_content_validated(self, bin_number: int) -> bool:
        return self.entry_count(bin_number) >= self.min_entries

    def to_dataframe(self) -> pd.DataFrame:
        """Mean, error and entries for every harmonic and event class bin"""
        rows = []
        for harmonic in self.harmonic_map:
            for bin_number in range(self.event_classes.n_bins):
                x, x_error = self._bin(harmonic, X_COMPONENT, bin_number)
                y, y_error = self._bin(harmonic, Y_COMPONENT, bin_number)
                rows.append(dict(harmonic=harmonic, bin=bin_number,
                                 x=x, x_error=x_error, y=y, y_error=y_error,
                                 entries=self.entry_count(bin_number, harmonic)))
        return pd.DataFrame(rows)


@export
class ProfileChannelized(ProfileBase):
    """Per channel profile of a data vector weight (e.g. multiplicity), per event class bin

    Channels are numbered 0 .. n_channels - 1. Only used channels are filled,
    channels can be grouped (group -1 means no group) to provide group
    weights.
    """
    kind = 'channelized'

    def __init__(self, name, event_classes, n_channels: int, error_mode='s'):
        super().__init__(name, event_classes, error_mode=error_mode)
        self.n_channels = int(n_channels)

    def _channel_arrays(self, used_channels, channel_groups):
        if used_channels is None:
            used_channels = np.ones(self.n_channels, dtype=bool)
        used_channels = np.asarray(used_channels, dtype=bool)
        if channel_groups is None:
            channel_groups = np.full(self.n_channels, -1, dtype=np.int32)
        channel_groups = np.asarray(channel_groups, dtype=np.int32)
        for label, array in (('used channels mask', used_channels),
                             ('channel groups', channel_groups)):
            if len(array) != self.n_channels:
                raise ConfigurationError(
                    f'{self.name!r}: {label} has {len(array)} entries '
                    f'for {self.n_channels} channels')
        return used_channels, channel_groups

    def create_profile_histograms(self, calibration_list: dict,
                                  used_channels=None, channel_groups=None) -> bool:
        used_channels, channel_groups = self._channel_arrays(used_channels, channel_groups)
        shape = (self.n_channels, self.event_classes.n_bins)
        state = dict(
            kind=self.kind,
            used_channels=used_channels,
            channel_groups=channel_groups,
            sum_values=np.zeros(shape, dtype=np.float64),
            sum_squares=np.zeros(shape, dtype=np.float64),
            entries=np.zeros(shape, dtype=np.int64),
        )
        self._register(calibration_list, state)
        return True

    def attach_histograms(self, input_list: ty.Optional[dict],
                          used_channels=None, channel_groups=None) -> bool:
        state = self._find_input(input_list)
        if state is None:
            return False
        if state['entries'].shape[0] != self.n_channels:
            raise ConfigurationError(
                f'Histogram {self.name!r} in the input list has '
                f'{state["entries"].shape[0]} channels, expected {self.n_channels}')
        used_channels, channel_groups = self._channel_arrays(used_channels, channel_groups)
        self._state = {k: np.array(v, copy=True) if isinstance(v, np.ndarray) else v
                       for k, v in state.items()}
        self._state['used_channels'] = used_channels
        self._state['channel_groups'] = channel_groups
        return True

    def fill(self, variable_container, channels, weights):
        """Add the weight of each data vector to its channel"""
        bin_number = self.get_bin(variable_container)
        if bin_number == OUT_OF_RANGE_BIN:
            return
        channels = np.asarray(channels, dtype=np.int64)
        weights = np.asarray(weights, dtype=np.float64)
        in_range = (channels >= 0) & (channels < self.n_channels)
        channels, weights = channels[in_range], weights[in_range]
        used = self._state['used_channels'][channels]
        channels, weights = channels[used], weights[used]
        np.add.at(self._state['sum_values'][:, bin_number], channels, weights)
        np.add.at(self._state['sum_squares'][:, bin_number], channels, weights ** 2)
        np.add.at(self._state['entries'][:, bin_number], channels, 1)

    def _bin(self, bin_number, channels):
        channels = np.asarray(channels, dtype=np.int64)
        if bin_number == OUT_OF_RANGE_BIN:
            zeros = np.zeros(channels.shape)
            return zeros, zeros.copy()
        return _spread_or_error(self._state['sum_values'][channels, bin_number],
                                self._state['sum_squares'][channels, bin_number],
                                self._state['entries'][channels, bin_number],
                                self.error_mode)

    def bin_content(self, bin_number: int, channels):
        """Mean weight of channels in bin_number"""
        return self._bin(bin_number, channels)[0]

    def bin_error(self, bin_number: int, channels):
        """Spread (or error on the mean) of the weight of channels in bin_number"""
        return self._bin(bin_number, channels)[1]

    def entry_count(self, bin_number: int, channels):
        channels = np.asarray(channels, dtype=np.int64)
        if bin_number == OUT_OF_RANGE_BIN:
            return np.zeros(channels.shape, dtype=np.int64)
        return self._state['entries'][channels, bin_number]

    def group_bin_content(self, bin_number: int, channels):
        """Group weight of channels in bin_number.

        The mean of the significant channel averages of the group each
        channel belongs to, 0 for groups without any, 1 for ungrouped channels.
        """
        channels = np.asarray(channels, dtype=np.int64)
        groups = self._state['channel_groups']
        averages = self.bin_content(bin_number, np.arange(self.n_channels))
        usable = (self._state['used_channels']
                  & (averages >= MINIMUM_SIGNIFICANT_VALUE)
                  & (groups >= 0))
        group_weights = {}
        for group in np.unique(groups[groups >= 0]):
            members = usable & (groups == group)
            group_weights[group] = float(averages[members].mean()) if members.any() else 0.
        result = np.array([group_weights.get(g, 1.) for g in groups[channels].ravel()],
                          dtype=np.float64)
        return result.reshape(channels.shape)

    def to_dataframe(self) -> pd.DataFrame:
        n_bins = self.event_classes.n_bins
        channels = np.repeat(np.arange(self.n_channels), n_bins)
        bins = np.tile(np.arange(n_bins), self.n_channels)
        mean, error = _spread_or_error(self._state['sum_values'].ravel(),
                                       self._state['sum_squares'].ravel(),
                                       self._state['entries'].ravel(),
                                       self.error_mode)
        return pd.DataFrame(dict(channel=channels, bin=bins, mean=mean, error=error,
                                 entries=self._state['entries'].ravel()))


@export
class NotValidatedCounter:
    """Counts, per event class bin, the events whose calibration bin was not validated"""
    kind = 'counts'

    def __init__(self, name: str, event_classes: EventClassVariablesSet):
        self.name = name
        self.event_classes = event_classes
        self._state = dict(kind=self.kind,
                           counts=np.zeros(event_classes.n_bins + 1, dtype=np.int64))

    @property
    def counts(self) -> np.ndarray:
        """Counts per event class bin"""
        return self._state['counts'][:-1]

    @property
    def out_of_range(self) -> int:
        return int(self._state['counts'][-1])

    @property
    def total(self) -> int:
        return int(self._state['counts'].sum())

    def create_histogram(self, qa_list: dict) -> bool:
        if self.name in qa_list:
            raise ConfigurationError(
                f'A histogram named {self.name!r} is already in the QA list')
        qa_list[self.name] = self._state
        return True

    def increment_not_validated(self, variable_container):
        # Last slot collects events outside the event class binning
        self._state['counts'][self.event_classes.get_bin(variable_container)] += 1


@export
def merge_calibration_lists(*calibration_lists: dict) -> dict:
    """Merge the calibration lists produced by concurrent passes

    Entries, sums and counts of histograms with the same path add up, any
    other field is taken from the first list providing the histogram.
    """
    merged = {}
    for calibration_list in calibration_lists:
        _merge_into(merged, calibration_list)
    return merged


def _merge_into(target, source):
    for name, item in source.items():
        if 'kind' in item:
            if name not in target:
                target[name] = {k: np.array(v, copy=True) if isinstance(v, np.ndarray) else v
                                for k, v in item.items()}
                continue
            existing = target[name]
            if existing['kind'] != item['kind']:
                raise ConfigurationError(
                    f'Cannot merge {name!r}: {existing["kind"]!r} vs {item["kind"]!r}')
            for field in SUMMABLE_FIELDS:
                if field not in item:
                    continue
                if existing[field].shape != item[field].shape:
                    raise ConfigurationError(
                        f'Cannot merge {name!r}: {field} shapes '
                        f'{existing[field].shape} and {item[field].shape} differ')
                existing[field] = existing[field] + item[field]
        else:
            _merge_into(target.setdefault(name, {}), item)
