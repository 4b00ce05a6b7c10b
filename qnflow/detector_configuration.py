import enum
import logging
import typing as ty
from abc import ABC, abstractmethod

import numpy as np
import strax

from .common import ConfigurationError, MINIMUM_SIGNIFICANT_VALUE
from .correction_steps import CorrectionOnInputData, CorrectionOnQnVector, CorrectionsSet
from .cuts import CutsSet
from .data_vectors import DataVectorBank
from .event_classes import EventClassVariablesSet
from .qn_vector import AccumulatingVector, HarmonicVector

export, __all__ = strax.exporter()


@export
class QnNormalizationMethod(str, enum.Enum):
    """How the freshly built Q vector is normalized"""
    NONE = 'none'
    OVER_SQRT_M = 'over_sqrt_m'
    OVER_M = 'over_m'
    UNIT_LENGTH = 'unit_length'


@export
class DetectorConfiguration(ABC):
    """A detector (or part of it) with its own Q vector and corrections.

    Owns the plain Q vector as built from the data vectors of the event,
    the corrected Q vector at the end of the correction chain and the
    ordered Q vector correction steps. This base class only knows about Q
    vector corrections, corrections on the input data need a channelized
    configuration.

    :param name: unique name of the configuration
    :param event_class_variables: binning of the calibration histograms
    :param n_harmonics: harmonics 1 .. n_harmonics are handled
    :param harmonic_map: explicit harmonics to handle instead, e.g. [2, 4]
    :param normalization: a QnNormalizationMethod or its value
    :param cuts: CutsSet the events must pass, every event if not given
    """
    plain_qn_vector_name = 'plain'

    def __init__(self,
                 name: str,
                 event_class_variables: EventClassVariablesSet,
                 n_harmonics: ty.Optional[int] = None,
                 harmonic_map: ty.Optional[ty.Sequence[int]] = None,
                 normalization=QnNormalizationMethod.NONE,
                 cuts: ty.Optional[CutsSet] = None):
        self.name = name
        self.event_class_variables = event_class_variables
        self.cuts = cuts
        self.qn_normalization_method = QnNormalizationMethod(normalization)
        self.plain_qn_vector = HarmonicVector(
            self.plain_qn_vector_name, n_harmonics=n_harmonics, harmonic_map=harmonic_map)
        self.corrected_qn_vector = HarmonicVector(
            self.plain_qn_vector_name, n_harmonics=n_harmonics, harmonic_map=harmonic_map)
        self.building_qn_vector = AccumulatingVector(
            'temp', n_harmonics=n_harmonics, harmonic_map=harmonic_map)
        self._current_qn_vector = self.plain_qn_vector
        self.qn_vector_corrections = CorrectionsSet()
        self.data_vector_bank = DataVectorBank()
        self.log = logging.getLogger(self.__class__.__name__)

    def __repr__(self):
        return (f'{self.__class__.__name__}({self.name!r}, '
                f'harmonic_map={self.harmonic_map()})')

    def n_harmonics(self) -> int:
        return self.plain_qn_vector.n_harmonics

    def harmonic_map(self) -> ty.List[int]:
        return self.plain_qn_vector.harmonic_map()

    @property
    def current_qn_vector(self) -> HarmonicVector:
        """Q vector after the corrections processed so far in this event"""
        return self._current_qn_vector

    def update_current_qn_vector(self, qn_vector: HarmonicVector):
        self._current_qn_vector = qn_vector

    @property
    def correction_steps(self) -> list:
        return list(self.qn_vector_corrections)

    def add_correction_on_qn_vector(self, correction: CorrectionOnQnVector):
        correction.set_configuration_owner(self)
        self.qn_vector_corrections.add(correction)

    def add_correction_on_input_data(self, correction: CorrectionOnInputData):
        raise ConfigurationError(
            f'You are adding {correction.correction_name} to {self.name!r} which is a '
            f'{self.__class__.__name__}. Corrections on input data need a channelized '
            'detector configuration.')

    def previous_corrected_qn_vector(self, correction: CorrectionOnQnVector) -> HarmonicVector:
        """Corrected Q vector of the step before correction, the plain Q vector for the first step"""
        previous = self.qn_vector_corrections.previous(correction)
        if previous is None:
            return self.plain_qn_vector
        return previous.corrected_qn_vector

    def input_data_samples(self) -> np.ndarray:
        """Data vectors of the current event"""
        return self.data_vector_bank.data

    def _event_selected(self, variable_container) -> bool:
        return self.cuts is None or self.cuts.is_selected(variable_container)

    @abstractmethod
    def is_selected(self, variable_container, *args) -> bool:
        """Whether the event described by variable_container applies to this configuration"""
        pass

    @abstractmethod
    def add_data_vector(self, *args, **kwargs) -> bool:
        pass

    @abstractmethod
    def _building_weights(self, data: np.ndarray) -> np.ndarray:
        pass

    def create_support_data_structures(self):
        for correction in self.correction_steps:
            correction.create_support_data_structures()

    def create_support_histograms(self, calibration_list: dict) -> bool:
        histograms = calibration_list.setdefault(self.name, {})
        return all([correction.create_support_histograms(histograms)
                    for correction in self.correction_steps])

    def attach_correction_inputs(self, input_list: ty.Optional[dict]) -> bool:
        """Attach the calibration of a previous pass to every step

        :return: whether every step found its calibration
        """
        inputs = (input_list or {}).get(self.name)
        return all([correction.attach_input(inputs)
                    for correction in self.correction_steps])

    def create_qa_histograms(self, qa_list: dict) -> bool:
        histograms = qa_list.setdefault(self.name, {})
        return all([correction.create_qa_histograms(histograms)
                    for correction in self.correction_steps])

    def create_nve_qa_histograms(self, nve_list: dict) -> bool:
        histograms = nve_list.setdefault(self.name, {})
        return all([correction.create_nve_qa_histograms(histograms)
                    for correction in self.correction_steps])

    def process_input_data_corrections(self, variable_container) -> bool:
        return False

    def build_qn_vector(self):
        """Build the plain Q vector from the data vectors of the event"""
        data = self.input_data_samples()
        building = self.building_qn_vector
        building.reset()
        building.fill(data['phi'], self._building_weights(data))
        building.set_good(building.n > 0
                          and building.sum_of_weights >= MINIMUM_SIGNIFICANT_VALUE)

        method = self.qn_normalization_method
        if method is QnNormalizationMethod.OVER_M:
            building.normalize_over_weight()
        elif method is QnNormalizationMethod.OVER_SQRT_M:
            building.normalize_over_sqrt_weight()
        elif method is QnNormalizationMethod.UNIT_LENGTH:
            building.normalize()

        self.plain_qn_vector.copy_from(building)
        self._current_qn_vector = self.plain_qn_vector

    def process_corrections(self, variable_container) -> bool:
        """Input data corrections, Q vector building and Q vector corrections

        :return: whether any Q vector correction has been applied
        """
        self.process_input_data_corrections(variable_container)
        self.build_qn_vector()
        applied = [correction.process_corrections(variable_container)
                   for correction in self.qn_vector_corrections]
        self.corrected_qn_vector.copy_from(self._current_qn_vector, change_name=True)
        return any(applied)

    def process_data_collection(self, variable_container):
        for correction in self.qn_vector_corrections:
            correction.process_data_collection(variable_container)

    def clear_configuration(self):
        """Forget everything about the current event, calibration histograms are kept"""
        self.data_vector_bank.clear()
        self.building_qn_vector.reset()
        self.plain_qn_vector.reset()
        self.corrected_qn_vector.reset()
        self.corrected_qn_vector.name = self.plain_qn_vector_name
        self._current_qn_vector = self.plain_qn_vector
        for correction in self.correction_steps:
            correction.clear_correction_step()

    def report_usage(self, calibration_list: list, apply_list: list) -> bool:
        return any([correction.report_usage(calibration_list, apply_list)
                    for correction in self.correction_steps])

    def freeze_calibration(self) -> bool:
        return all([correction.freeze_calibration()
                    for correction in self.correction_steps])


@export
class TracksDetectorConfiguration(DetectorConfiguration):
    """Detector configuration whose data vectors are tracks, without channels"""

    def is_selected(self, variable_container) -> bool:
        return self._event_selected(variable_container)

    def add_data_vector(self, phi: float, weight: float = 1.,
                        variable_container=None) -> bool:
        """Add a track, ignored when variable_container is given and fails the cuts

        :return: whether the data vector was accepted
        """
        if variable_container is not None and not self.is_selected(variable_container):
            return False
        self.data_vector_bank.append(phi, weight)
        return True

    def add_data_vectors(self, phi, weight=None, variable_container=None):
        if variable_container is not None and not self.is_selected(variable_container):
            return
        self.data_vector_bank.extend(np.atleast_1d(phi),
                                     None if weight is None else np.atleast_1d(weight))

    def _building_weights(self, data):
        return data['weight']


@export
class ChannelsDetectorConfiguration(DetectorConfiguration):
    """Detector configuration whose data vectors come from detector channels.

    Supports corrections on the input data, e.g. gain equalization, and
    builds the Q vector from the equalized weights.

    :param n_channels: number of channels, numbered 0 .. n_channels - 1
    :param used_channels: boolean mask of the channels used by this
        configuration, all if not given
    :param channel_groups: group number of each channel, -1 for no group
    :param hard_coded_group_weights: fixed weight of each channel, used by
        gain equalization when group weights are not taken from histograms
    """

    def __init__(self, name, event_class_variables, n_channels: int,
                 n_harmonics=None, harmonic_map=None,
                 used_channels=None, channel_groups=None, hard_coded_group_weights=None,
                 normalization=QnNormalizationMethod.NONE, cuts=None):
        super().__init__(name, event_class_variables, n_harmonics=n_harmonics,
                         harmonic_map=harmonic_map, normalization=normalization, cuts=cuts)
        self.n_channels = int(n_channels)
        self._used_channels = self._per_channel(
            'used channels', used_channels, np.ones(self.n_channels, dtype=bool), bool)
        self._channel_groups = self._per_channel(
            'channel groups', channel_groups, None, np.int32)
        self._hard_coded_group_weights = self._per_channel(
            'hard coded group weights', hard_coded_group_weights, None, np.float64)
        self.input_data_corrections = CorrectionsSet()

    def _per_channel(self, label, values, default, dtype):
        if values is None:
            return default
        values = np.asarray(values, dtype=dtype)
        if len(values) != self.n_channels:
            raise ConfigurationError(
                f'{self.name!r} has {self.n_channels} channels but {len(values)} {label}')
        return values

    def used_channels_mask(self) -> np.ndarray:
        return self._used_channels.copy()

    def channel_groups(self) -> ty.Optional[np.ndarray]:
        if self._channel_groups is None:
            return None
        return self._channel_groups.copy()

    @property
    def uses_channel_groups(self) -> bool:
        return self._channel_groups is not None

    def hard_coded_group_weights(self) -> ty.Optional[np.ndarray]:
        if self._hard_coded_group_weights is None:
            return None
        return self._hard_coded_group_weights.copy()

    @property
    def correction_steps(self) -> list:
        return list(self.input_data_corrections) + list(self.qn_vector_corrections)

    def add_correction_on_input_data(self, correction: CorrectionOnInputData):
        correction.set_configuration_owner(self)
        self.input_data_corrections.add(correction)

    def _check_channels(self, channels):
        channels = np.asarray(channels)
        if np.any((channels < 0) | (channels >= self.n_channels)):
            raise ConfigurationError(
                f'{self.name!r} has channels 0 .. {self.n_channels - 1}, got {channels}')
        return channels

    def is_selected(self, variable_container, channel: ty.Optional[int] = None) -> bool:
        """Whether the event passes the cuts and, if given, channel is used"""
        if channel is not None:
            channel = int(self._check_channels(channel))
            if not self._used_channels[channel]:
                return False
        return self._event_selected(variable_container)

    def add_data_vector(self, channel: int, phi: float, weight: float = 1.,
                        variable_container=None) -> bool:
        """Add a data vector, ignored when its channel is not used or when
        variable_container is given and fails the cuts

        :return: whether the data vector was accepted
        """
        channel = int(self._check_channels(channel))
        if not self._used_channels[channel]:
            return False
        if variable_container is not None and not self.is_selected(variable_container):
            return False
        self.data_vector_bank.append(phi, weight, channel)
        return True

    def add_data_vectors(self, channel, phi, weight=None, variable_container=None):
        channel = self._check_channels(np.atleast_1d(channel))
        phi = np.atleast_1d(np.asarray(phi, dtype=np.float64))
        if len(channel) != len(phi):
            raise ValueError(f'Got {len(channel)} channels and {len(phi)} angles')
        if variable_container is not None and not self.is_selected(variable_container):
            return
        used = self._used_channels[channel]
        if weight is not None:
            weight = np.atleast_1d(np.asarray(weight, dtype=np.float64))[used]
        self.data_vector_bank.extend(phi[used], weight, channel[used])

    def process_input_data_corrections(self, variable_container) -> bool:
        applied = [correction.process(variable_container)
                   for correction in self.input_data_corrections]
        return any(applied)

    def _building_weights(self, data):
        return data['equalized_weight']
