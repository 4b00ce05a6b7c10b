import enum

import numpy as np
import strax
from pydantic import BaseModel

from .common import ConfigurationError, MINIMUM_SIGNIFICANT_VALUE, safe_divide
from .correction_steps import CorrectionOnInputData, CorrectionStepState
from .detector_configuration import ChannelsDetectorConfiguration
from .histograms import ProfileChannelized

export, __all__ = strax.exporter()


@export
class EqualizationMethod(str, enum.Enum):
    NONE = 'none'
    AVERAGE = 'average'
    WIDTH = 'width'


@export
class GainEqualizationOptions(BaseModel):
    """Options of the gain equalization step

    width equalization computes shift + scale * (weight - average) / width
    """
    method: EqualizationMethod = EqualizationMethod.NONE
    shift: float = 0.
    scale: float = 1.
    use_channel_groups_weights: bool = False


@export
def equalize_weights(weights, average, width=None, group_weight=1.,
                     method=EqualizationMethod.AVERAGE, shift=0., scale=1.):
    """Equalized weights of data vectors

    :param weights: raw weights
    :param average: calibrated mean weight of the channel of each data vector
    :param width: calibrated spread of the weight of each channel, only
        needed for width equalization
    :param group_weight: weight of the channel group of each data vector
    :param method: an EqualizationMethod or its value
    :param shift: constant term of width equalization
    :param scale: slope of width equalization
    :return: float64 array of equalized weights. Channels whose average (or
        width, for width equalization) is not significant get weight 0.
    """
    method = EqualizationMethod(method)
    weights = np.asarray(weights, dtype=np.float64)
    if method is EqualizationMethod.NONE:
        return weights.copy()

    average = np.broadcast_to(np.asarray(average, dtype=np.float64), weights.shape)
    group_weight = np.broadcast_to(np.asarray(group_weight, dtype=np.float64), weights.shape)
    functional = average > MINIMUM_SIGNIFICANT_VALUE
    if method is EqualizationMethod.AVERAGE:
        result = np.where(functional, safe_divide(weights, average), 0.)
    else:
        if width is None:
            raise ValueError('Width equalization needs the channel widths')
        width = np.broadcast_to(np.asarray(width, dtype=np.float64), weights.shape)
        functional &= width > MINIMUM_SIGNIFICANT_VALUE
        result = np.where(functional, shift + scale * safe_divide(weights - average, width), 0.)
    result[functional] *= group_weight[functional]
    return result


@export
class GainEqualizationStep(CorrectionOnInputData):
    """Channel gain equalization of the data vectors of a channelized detector.

    Collects, per channel and event class, the mean and spread of the raw
    data vector weights. Once a previous calibration is attached, the
    equalized weight of every data vector is computed from it, see
    equalize_weights. Only the equalized weight of the data vectors is
    written, the raw weight and angle are untouched.
    """
    correction_name = 'Gain equalization'
    key = 'CCCC'
    support_histogram_name = 'Multiplicity'

    def __init__(self, **options):
        super().__init__()
        self.options = GainEqualizationOptions(**options)
        self.input_histograms = None
        self.calibration_histograms = None
        self.hard_coded_weights = None

    @property
    def equalization_method(self) -> EqualizationMethod:
        return self.options.method

    def set_configuration_owner(self, detector_configuration):
        if not isinstance(detector_configuration, ChannelsDetectorConfiguration):
            raise ConfigurationError(
                f'{self.correction_name} can only be used on channelized detector '
                f'configurations, {detector_configuration.name!r} is a '
                f'{detector_configuration.__class__.__name__}')
        super().set_configuration_owner(detector_configuration)

    def create_support_histograms(self, calibration_list: dict) -> bool:
        configuration = self.detector_configuration
        self.input_histograms = ProfileChannelized(
            self.support_histogram_name, configuration.event_class_variables,
            configuration.n_channels, error_mode='s')
        self.calibration_histograms = ProfileChannelized(
            self.support_histogram_name, configuration.event_class_variables,
            configuration.n_channels, error_mode='s')
        return self.calibration_histograms.create_profile_histograms(
            calibration_list,
            configuration.used_channels_mask(),
            configuration.channel_groups())

    def attach_input(self, input_list) -> bool:
        configuration = self.detector_configuration
        if self.input_histograms.attach_histograms(
                input_list,
                configuration.used_channels_mask(),
                configuration.channel_groups()):
            self.log.info(f'{self.correction_name} on {configuration.name} going to be applied')
            self.state = CorrectionStepState.APPLY_COLLECT
            self.hard_coded_weights = configuration.hard_coded_group_weights()
            return True
        return False

    def collect(self, variable_container):
        data = self.detector_configuration.input_data_samples()
        self.calibration_histograms.fill(variable_container, data['channel'], data['weight'])

    def _group_weights(self, bin_number, channels):
        if self.options.use_channel_groups_weights:
            return self.input_histograms.group_bin_content(bin_number, channels)
        if self.hard_coded_weights is not None:
            return np.asarray(self.hard_coded_weights, dtype=np.float64)[channels]
        return 1.

    def apply(self, variable_container):
        data = self.detector_configuration.input_data_samples()
        if self.equalization_method is EqualizationMethod.NONE:
            data['equalized_weight'] = data['weight']
            return
        bin_number = self.input_histograms.get_bin(variable_container)
        channels = data['channel']
        average = self.input_histograms.bin_content(bin_number, channels)
        width = None
        if self.equalization_method is EqualizationMethod.WIDTH:
            width = self.input_histograms.bin_error(bin_number, channels)
        data['equalized_weight'] = equalize_weights(
            data['weight'], average, width,
            group_weight=self._group_weights(bin_number, channels),
            method=self.equalization_method,
            shift=self.options.shift,
            scale=self.options.scale)
