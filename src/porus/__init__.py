"""
*PORUS*

Steady-state two-phase relative permeability upscaling of porous media blocks.
"""

from ._precision import *  # noqa
from .constants import *  # noqa
from .errors import *  # noqa
from .types import *  # noqa
from .config import *  # noqa
from .grids import *  # noqa
from .relperm import *  # noqa
from .capillary_pressures import *  # noqa
from .properties import *  # noqa
from .boundary_conditions import *  # noqa
from .linear_solvers import *  # noqa
from .flow import *  # noqa
from .transport import *  # noqa
from .single_phase import *  # noqa
from .fluxes import *  # noqa
from .stores import *  # noqa
from .visualization import *  # noqa
from .upscaler import *  # noqa
