import logging
import typing as ty

import strax

from .common import ConfigurationError
from .detector_configuration import DetectorConfiguration
from .qn_vector import HarmonicVector

export, __all__ = strax.exporter()


@export
class CorrectionsManager:
    """Drives the corrections of all detector configurations, event by event.

    Typical use, for every pass over the data:

        manager = CorrectionsManager()
        manager.add_detector_configuration(configuration)
        manager.set_calibration_input(calibration_list_of_previous_pass)
        manager.initialize()
        for event in events:
            manager.add_data_vector('FMD', channel, phi, weight)
            manager.process_event(event_variables)
            q = manager.get_qn_vector('FMD')
            manager.clear_event()
        next_input = manager.calibration_list

    The calibration list of a pass (or the merge of the lists of concurrent
    passes, see merge_calibration_lists) is the calibration input of the
    next pass.
    """

    def __init__(self):
        self.detector_configurations: ty.Dict[str, DetectorConfiguration] = {}
        self._calibration_input = None
        self._calibration_list = {}
        self._qa_list = {}
        self._nve_qa_list = {}
        self._initialized = False
        self.log = logging.getLogger('CorrectionsManager')

    @property
    def calibration_list(self) -> dict:
        """Statistics collected in this pass, per detector configuration"""
        return self._calibration_list

    @property
    def qa_list(self) -> dict:
        return self._qa_list

    @property
    def nve_qa_list(self) -> dict:
        """Not validated entries counters, per detector configuration"""
        return self._nve_qa_list

    def add_detector_configuration(self, detector_configuration: DetectorConfiguration):
        if self._initialized:
            raise ConfigurationError(
                f'Cannot add {detector_configuration.name!r} after initialization')
        if detector_configuration.name in self.detector_configurations:
            raise ConfigurationError(
                f'A detector configuration named {detector_configuration.name!r} '
                'is already registered')
        self.detector_configurations[detector_configuration.name] = detector_configuration

    def detector_configuration(self, name: str) -> DetectorConfiguration:
        if name not in self.detector_configurations:
            raise ConfigurationError(
                f'Unknown detector configuration {name!r}, registered are '
                f'{list(self.detector_configurations)}')
        return self.detector_configurations[name]

    def set_calibration_input(self, input_list: ty.Optional[dict]):
        """Calibration list of a previous pass to attach at initialization"""
        self._calibration_input = input_list

    def initialize(self):
        """Allocate the per event structures and histograms, attach the calibration input"""
        for name, configuration in self.detector_configurations.items():
            configuration.create_support_data_structures()
            configuration.create_support_histograms(self._calibration_list)
            if configuration.attach_correction_inputs(self._calibration_input):
                self.log.debug(f'All corrections on {name} found their calibration')
            configuration.create_qa_histograms(self._qa_list)
            configuration.create_nve_qa_histograms(self._nve_qa_list)
        self._initialized = True
        self.log.info(f'Initialized {len(self.detector_configurations)} detector configurations')

    def add_data_vector(self, configuration_name: str, *args, **kwargs) -> bool:
        """Add a data vector to a configuration, arguments as its add_data_vector"""
        return self.detector_configuration(configuration_name).add_data_vector(*args, **kwargs)

    def add_data_vectors(self, configuration_name: str, *args, **kwargs):
        self.detector_configuration(configuration_name).add_data_vectors(*args, **kwargs)

    def process_event(self, variable_container) -> bool:
        """Correct the Q vectors of the event, then collect the statistics

        :param variable_container: event variables, indexable by the var_id
            of the event class variables
        Configurations whose cuts reject the event are skipped, their data
        vectors are dropped and their Q vectors stay bad.

        :return: whether any Q vector correction has been applied
        """
        if not self._initialized:
            raise ConfigurationError('Call initialize() before processing events')
        selected = []
        for name, configuration in self.detector_configurations.items():
            if configuration.is_selected(variable_container):
                selected.append(configuration)
            else:
                self.log.debug(f'Event rejected by the cuts of {name}')
                configuration.clear_configuration()
        applied = [configuration.process_corrections(variable_container)
                   for configuration in selected]
        for configuration in selected:
            configuration.process_data_collection(variable_container)
        return any(applied)

    def clear_event(self):
        for configuration in self.detector_configurations.values():
            configuration.clear_configuration()

    def report_usage(self) -> ty.Dict[str, ty.Dict[str, ty.List[str]]]:
        """What every correction does in this pass

        :return: {configuration name: {'calibration': [...], 'apply': [...]}}
        """
        report = {}
        for name, configuration in self.detector_configurations.items():
            calibrating, applying = [], []
            configuration.report_usage(calibrating, applying)
            report[name] = dict(calibration=calibrating, apply=applying)
            self.log.info(f'{name}: collecting for {calibrating or "nothing"}, '
                          f'applying {applying or "nothing"}')
        return report

    def freeze_calibration(self) -> bool:
        """Stop collecting where a calibration is attached

        :return: whether every correction could be frozen
        """
        return all([configuration.freeze_calibration()
                    for configuration in self.detector_configurations.values()])

    def get_qn_vector(self, configuration_name: str,
                      step_name: ty.Optional[str] = None) -> HarmonicVector:
        """Q vector of a configuration for the current event

        :param step_name: None for the fully corrected Q vector, 'plain' for
            the Q vector as built, or the corrected Q vector name of a step,
            e.g. 'rec'
        """
        configuration = self.detector_configuration(configuration_name)
        if step_name is None:
            return configuration.corrected_qn_vector
        if step_name == configuration.plain_qn_vector_name:
            return configuration.plain_qn_vector
        for correction in configuration.qn_vector_corrections:
            if correction.corrected_qn_vector_name == step_name:
                return correction.corrected_qn_vector
        raise ConfigurationError(
            f'No correction step producing {step_name!r} on {configuration_name!r}')
