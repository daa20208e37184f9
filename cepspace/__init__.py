r"""
=============================================
  ___ ___ _ __  ___ _ __   __ _  ___ ___
 / __/ _ \ '_ \/ __| '_ \ / _` |/ __/ _ \
| (_|  __/ |_) \__ \ |_) | (_| | (_|  __/
 \___\___| .__/|___/ .__/ \__,_|\___\___|
         |_|       |_|
=============================================

Batched relativistic phase-space sampling for
central exclusive production using PyTorch.

"""
from .collinear import CollinearSampler
from .continuum import ContinuumSampler
from .cuts import FiducialCuts, GenerationCuts
from .decaytree import DecayTree, OffShellMassSampler, Particle
from .errors import ConfigurationError, IterationExhausted
from .event import AuxIntegrationData, KinematicEvent, LorentzScalars, SampledPoint
from .factorized import FactorizedSampler
from .helper import build_beams, build_symmetric_beams
from .integrand import EventWeight, VegasIntegrand

__all__ = [
    "AuxIntegrationData",
    "CollinearSampler",
    "ConfigurationError",
    "ContinuumSampler",
    "DecayTree",
    "EventWeight",
    "FactorizedSampler",
    "FiducialCuts",
    "GenerationCuts",
    "IterationExhausted",
    "KinematicEvent",
    "LorentzScalars",
    "OffShellMassSampler",
    "Particle",
    "SampledPoint",
    "VegasIntegrand",
    "build_beams",
    "build_symmetric_beams",
]
