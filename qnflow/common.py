import numpy as np
import strax

export, __all__ = strax.exporter()
__all__ += ['MAX_HARMONIC_NUMBER', 'MINIMUM_SIGNIFICANT_VALUE', 'NO_HARMONIC',
            'DEFAULT_MIN_ENTRIES_TO_VALIDATE', 'N_HARMONIC_SLOTS']

# Highest external harmonic number the framework can handle
MAX_HARMONIC_NUMBER = 15
# Components are indexed by harmonic number, slot 0 is never used
N_HARMONIC_SLOTS = MAX_HARMONIC_NUMBER + 1

# Smallest value considered meaningful for processing
MINIMUM_SIGNIFICANT_VALUE = 1e-6

# Returned by harmonic iteration when no further harmonic is active
NO_HARMONIC = -1

# Calibration bins with fewer entries are not used for corrections
DEFAULT_MIN_ENTRIES_TO_VALIDATE = 2


@export
class ConfigurationError(Exception):
    """Wiring mistake detected before or while processing events.

    Raised for harmonics outside the supported range, mismatched harmonic
    structures, forbidden operations and corrections attached to a detector
    configuration that cannot support them. qnflow never catches it.
    """
    pass


@export
def check_harmonic(harmonic: int):
    """Raise ConfigurationError if harmonic is not within [1, MAX_HARMONIC_NUMBER]"""
    if harmonic > MAX_HARMONIC_NUMBER:
        raise ConfigurationError(
            f'You requested support for harmonic {harmonic} but the highest '
            f'harmonic supported by the framework is currently {MAX_HARMONIC_NUMBER}')
    if harmonic < 1:
        raise ConfigurationError(
            f'Harmonic numbers start at 1, you requested harmonic {harmonic}')
    return int(harmonic)


@export
def safe_divide(numerator, denominator, fill_value=0.):
    """Element-wise numerator / denominator where |denominator| is significant.

    Elements with a denominator below MINIMUM_SIGNIFICANT_VALUE get fill_value
    so that no inf or nan leaks into the results.

    :param numerator: array-like numerator
    :param denominator: array-like denominator, broadcastable to numerator
    :param fill_value: value for the non-significant denominators
    :return: float64 array
    """
    numerator = np.asarray(numerator, dtype=np.float64)
    denominator = np.asarray(denominator, dtype=np.float64)
    shape = np.broadcast(numerator, denominator).shape
    result = np.full(shape, fill_value, dtype=np.float64)
    significant = np.abs(denominator) >= MINIMUM_SIGNIFICANT_VALUE
    np.divide(numerator, denominator, out=result, where=significant)
    return result
