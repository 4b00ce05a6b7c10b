import bisect
import enum
import logging
import typing as ty
from abc import ABC, abstractmethod

import strax

export, __all__ = strax.exporter()


@export
class CorrectionStepState(enum.Enum):
    """Processing state of a correction step

    CALIBRATION: only collect the statistics for a later pass.
    APPLY_COLLECT: apply the correction attached from a previous pass and
        keep collecting statistics.
    APPLY: only apply the correction.
    """
    CALIBRATION = 'calibration'
    APPLY_COLLECT = 'apply_collect'
    APPLY = 'apply'

    @property
    def is_collecting(self) -> bool:
        return self in (CorrectionStepState.CALIBRATION, CorrectionStepState.APPLY_COLLECT)

    @property
    def is_applying(self) -> bool:
        return self in (CorrectionStepState.APPLY_COLLECT, CorrectionStepState.APPLY)


@export
class CorrectionStep(ABC):
    """Base of every correction step.

    A step starts in CALIBRATION, moves to APPLY_COLLECT when it manages to
    attach the calibration produced by a previous pass and to APPLY when
    the calibration is frozen from outside. What the step does for an event
    only depends on the two capabilities of its state, see
    CorrectionStepState.
    """
    # Name used in the usage reports and log messages
    correction_name = ''
    # Steps of a set are ordered by this key
    key = ''

    def __init__(self):
        self.state = CorrectionStepState.CALIBRATION
        self.detector_configuration = None
        self.log = logging.getLogger(self.__class__.__name__)

    @property
    def name(self) -> str:
        return self.correction_name

    @property
    def is_collecting(self) -> bool:
        return self.state.is_collecting

    @property
    def is_applying(self) -> bool:
        return self.state.is_applying

    def set_configuration_owner(self, detector_configuration):
        self.detector_configuration = detector_configuration

    @property
    def configuration_name(self) -> str:
        if self.detector_configuration is None:
            return '<unattached>'
        return self.detector_configuration.name

    def create_support_data_structures(self):
        """Allocate what the step needs for processing events"""
        pass

    @abstractmethod
    def create_support_histograms(self, calibration_list: dict) -> bool:
        """Create the histograms collecting statistics and register them in calibration_list"""
        pass

    @abstractmethod
    def attach_input(self, input_list: ty.Optional[dict]) -> bool:
        """Attach the calibration of a previous pass, moves to APPLY_COLLECT on success"""
        pass

    def create_qa_histograms(self, qa_list: dict) -> bool:
        return True

    def create_nve_qa_histograms(self, nve_list: dict) -> bool:
        return True

    def freeze_calibration(self) -> bool:
        """Stop collecting statistics and only apply the attached calibration.

        :return: False when the step has no attached calibration to apply
        """
        if self.state is CorrectionStepState.CALIBRATION:
            self.log.warning(f'{self.name} on {self.configuration_name} has no calibration '
                             f'attached, it keeps collecting statistics')
            return False
        self.state = CorrectionStepState.APPLY
        return True

    def report_usage(self, calibration_list: list, apply_list: list) -> bool:
        """Add the step name to the list(s) of what it does in this pass

        :return: whether the step is being applied
        """
        if self.is_collecting:
            calibration_list.append(self.name)
        if self.is_applying:
            apply_list.append(self.name)
        return self.is_applying

    def clear_correction_step(self):
        """Prepare the step for the next event, histograms are kept"""
        pass

    def __repr__(self):
        return (f'{self.__class__.__name__}(configuration={self.configuration_name!r}, '
                f'state={self.state.value})')


@export
class CorrectionOnInputData(CorrectionStep):
    """Correction step acting on the data vectors before the Q vector is built"""

    def process(self, variable_container) -> bool:
        """Collect and/or apply according to the state

        :return: whether the correction has been applied
        """
        if self.is_collecting:
            self.collect(variable_container)
        if self.is_applying:
            self.apply(variable_container)
            return True
        return False

    @abstractmethod
    def collect(self, variable_container):
        pass

    @abstractmethod
    def apply(self, variable_container):
        pass


@export
class CorrectionOnQnVector(CorrectionStep):
    """Correction step acting on the Q vector of a detector configuration

    The step reads the current Q vector of its configuration and writes its
    own corrected Q vector back as the new current one. Statistics are
    collected from the output of the previous step, or from the plain Q
    vector for the first step.
    """
    # Name of the corrected Q vector produced by the step
    corrected_qn_vector_name = ''

    def __init__(self):
        super().__init__()
        self.corrected_qn_vector = None
        self.input_qn_vector = None

    def process_corrections(self, variable_container) -> bool:
        """Apply the correction if the state says so, pass the input through otherwise

        :return: whether the correction has been applied
        """
        if self.is_applying:
            self.apply(variable_container)
            return True
        self.pass_through()
        return False

    def process_data_collection(self, variable_container) -> bool:
        """Collect statistics if the state says so

        :return: whether the correction is being applied
        """
        if self.is_collecting:
            self.collect(variable_container)
        return self.is_applying

    def process(self, variable_container) -> bool:
        applied = self.process_corrections(variable_container)
        self.process_data_collection(variable_container)
        return applied

    def pass_through(self):
        """Output the current Q vector unmodified"""
        current = self.detector_configuration.current_qn_vector
        self.corrected_qn_vector.copy_from(current)
        self.detector_configuration.update_current_qn_vector(self.corrected_qn_vector)

    @abstractmethod
    def collect(self, variable_container):
        pass

    @abstractmethod
    def apply(self, variable_container):
        pass

    def clear_correction_step(self):
        if self.corrected_qn_vector is not None:
            self.corrected_qn_vector.reset()


@export
class CorrectionsSet:
    """Ordered set of correction steps, sorted by their key"""

    def __init__(self):
        self._steps = []

    def add(self, step: CorrectionStep):
        keys = [s.key for s in self._steps]
        # Steps with equal keys keep their insertion order
        self._steps.insert(bisect.bisect_right(keys, step.key), step)

    def previous(self, step: CorrectionStep) -> ty.Optional[CorrectionStep]:
        """The step right before step, None for the first one"""
        index = self._index(step)
        return self._steps[index - 1] if index > 0 else None

    def _index(self, step):
        for i, s in enumerate(self._steps):
            if s is step:
                return i
        raise ValueError(f'{step} is not part of this set of corrections')

    def __iter__(self):
        return iter(self._steps)

    def __len__(self):
        return len(self._steps)

    def __getitem__(self, item):
        return self._steps[item]

    def __contains__(self, step):
        return any(s is step for s in self._steps)
