import strax
from pydantic import BaseModel, Field

from .common import DEFAULT_MIN_ENTRIES_TO_VALIDATE, MINIMUM_SIGNIFICANT_VALUE
from .correction_steps import CorrectionOnQnVector, CorrectionStepState
from .histograms import NotValidatedCounter, ProfileComponents
from .qn_vector import HarmonicVector

export, __all__ = strax.exporter()


@export
class RecenteringOptions(BaseModel):
    apply_width_equalization: bool = False
    min_entries_to_validate: int = Field(DEFAULT_MIN_ENTRIES_TO_VALIDATE, ge=1)


@export
class RecenteringStep(CorrectionOnQnVector):
    """Recentering and width equalization of a Q vector.

    Collects, per harmonic and event class, the mean and spread of the X and
    Y components of the Q vector coming out of the previous step. When a
    calibration is attached the calibrated mean is subtracted and, with width
    equalization, the result is divided by the calibrated spread:

        Qx' = (Qx - <Qx>) / sigma_x,   Qy' = (Qy - <Qy>) / sigma_y

    Event classes with fewer than min_entries_to_validate entries are left
    uncorrected and counted in the not validated QA counter.
    """
    correction_name = 'Recentering and width equalization'
    key = 'CCCC'
    support_histogram_name = 'Qn'
    corrected_qn_vector_name = 'rec'
    not_validated_histogram_name = 'Rec NvE'

    def __init__(self, **options):
        super().__init__()
        self.options = RecenteringOptions(**options)
        self.input_histograms = None
        self.calibration_histograms = None
        self.not_validated = None

    @property
    def apply_width_equalization(self) -> bool:
        return self.options.apply_width_equalization

    @property
    def min_entries_to_validate(self) -> int:
        return self.options.min_entries_to_validate

    def create_support_data_structures(self):
        configuration = self.detector_configuration
        self.corrected_qn_vector = HarmonicVector(
            self.corrected_qn_vector_name,
            harmonic_map=configuration.harmonic_map())
        self.input_qn_vector = configuration.previous_corrected_qn_vector(self)
        self.not_validated = NotValidatedCounter(
            f'{self.not_validated_histogram_name} {configuration.name}',
            configuration.event_class_variables)

    def _histogram_name(self):
        return f'{self.support_histogram_name} {self.detector_configuration.name}'

    def create_support_histograms(self, calibration_list: dict) -> bool:
        configuration = self.detector_configuration
        self.input_histograms = ProfileComponents(
            self._histogram_name(), configuration.event_class_variables, error_mode='s')
        self.input_histograms.set_entries_threshold(self.min_entries_to_validate)
        self.calibration_histograms = ProfileComponents(
            self._histogram_name(), configuration.event_class_variables, error_mode='s')
        return self.calibration_histograms.create_components_profile_histograms(
            calibration_list, configuration.harmonic_map())

    def attach_input(self, input_list) -> bool:
        if self.input_histograms.attach_histograms(
                input_list, self.detector_configuration.harmonic_map()):
            self.log.info(f'Recentering on {self.configuration_name} going to be applied')
            self.state = CorrectionStepState.APPLY_COLLECT
            return True
        return False

    def create_nve_qa_histograms(self, nve_list: dict) -> bool:
        return self.not_validated.create_histogram(nve_list)

    def apply(self, variable_container):
        configuration = self.detector_configuration
        current = configuration.current_qn_vector
        # Takes over the quality flag as well
        self.corrected_qn_vector.copy_from(current)
        if not current.good_quality:
            configuration.update_current_qn_vector(self.corrected_qn_vector)
            return

        bin_number = self.input_histograms.get_bin(variable_container)
        if not self.input_histograms.bin_content_validated(bin_number):
            self.not_validated.increment_not_validated(variable_container)
            self.log.debug(f'Recentering on {configuration.name}: bin {bin_number} not validated')
        else:
            for harmonic in current.harmonics():
                width_x, width_y = 1., 1.
                if self.apply_width_equalization:
                    width_x = _usable_width(self.input_histograms.x_bin_error(harmonic, bin_number))
                    width_y = _usable_width(self.input_histograms.y_bin_error(harmonic, bin_number))
                self.corrected_qn_vector.set_qx(
                    harmonic,
                    (current.qx(harmonic)
                     - self.input_histograms.x_bin_content(harmonic, bin_number)) / width_x)
                self.corrected_qn_vector.set_qy(
                    harmonic,
                    (current.qy(harmonic)
                     - self.input_histograms.y_bin_content(harmonic, bin_number)) / width_y)
        configuration.update_current_qn_vector(self.corrected_qn_vector)

    def collect(self, variable_container):
        if not self.input_qn_vector.good_quality:
            return
        for harmonic in self.input_qn_vector.harmonics():
            self.calibration_histograms.fill_x(
                harmonic, variable_container, self.input_qn_vector.qx(harmonic))
            self.calibration_histograms.fill_y(
                harmonic, variable_container, self.input_qn_vector.qy(harmonic))


def _usable_width(width):
    # Degenerate spread, only recenter
    if width < MINIMUM_SIGNIFICANT_VALUE:
        return 1.
    return width
