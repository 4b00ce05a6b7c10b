__version__ = '0.1.0'

from .common import *
from .harmonics import *
from .qn_vector import *
from .data_vectors import *
from .event_classes import *
from .histograms import *
from .correction_steps import *
from .cuts import *
from .detector_configuration import *
from .gain_equalization import *
from .recentering import *
from .manager import *
