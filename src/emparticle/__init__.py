"""emparticle -- per-image particle filter for iterative 3D/2D structure refinement.

Core modules:
  - model:        Axis/mode enums and result records
  - store:        Per-axis sample and weight buffers
  - quaternion:   Quaternion and in-plane rotation helpers
  - symmetry:     Point-group symmetry descriptor
  - directional:  Distribution fits and sampling kernels per axis
  - resampling:   Systematic/stratified/multinomial weighted resamplers
  - particle:     The factorized particle filter
  - report:       Plain-text dump and summary of a filter
"""

from .model import (
    ALL_AXES,
    MODE_2D,
    MODE_3D,
    PAR_C,
    PAR_D,
    PAR_R,
    PAR_T,
    Mode,
    ParticleEstimate,
    ParticleSummary,
    ParticleType,
    ParticleVariance,
    Resampler,
    RotationFormat,
)
from .particle import (
    PEAK_FACTOR_BASE,
    PEAK_FACTOR_C,
    PEAK_FACTOR_MAX,
    PEAK_FACTOR_MIN,
    PERTURB_K_MAX,
    RHO_MAX,
    RHO_MIN,
    Particle,
    ParticleFilterConfig,
)
from .report import display, particle_table, read_particle_table, save_particles
from .resampling import (
    MultinomialResampler,
    StratifiedResampler,
    SystematicResampler,
    build_resampler,
    normalize_weights,
)
from .store import AxisSamples
from .symmetry import Symmetry

__all__ = [
    "ALL_AXES",
    "AxisSamples",
    "MODE_2D",
    "MODE_3D",
    "Mode",
    "MultinomialResampler",
    "PAR_C",
    "PAR_D",
    "PAR_R",
    "PAR_T",
    "PEAK_FACTOR_BASE",
    "PEAK_FACTOR_C",
    "PEAK_FACTOR_MAX",
    "PEAK_FACTOR_MIN",
    "PERTURB_K_MAX",
    "Particle",
    "ParticleEstimate",
    "ParticleFilterConfig",
    "ParticleSummary",
    "ParticleType",
    "ParticleVariance",
    "RHO_MAX",
    "RHO_MIN",
    "Resampler",
    "RotationFormat",
    "StratifiedResampler",
    "Symmetry",
    "SystematicResampler",
    "build_resampler",
    "display",
    "normalize_weights",
    "particle_table",
    "read_particle_table",
    "save_particles",
]
