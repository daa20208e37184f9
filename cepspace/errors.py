""" Exceptions raised by the samplers.

Kinematic rejections are never exceptions, they show up as
``False`` entries in the validity masks.
"""


class ConfigurationError(ValueError):
    """Fatal setup error: unsupported topology, malformed cuts or
    a decay tree which does not match the sampler."""


class IterationExhausted(RuntimeError):
    """A mass-sampling retry loop exceeded its cap, the cuts can not be
    satisfied by the decay tree."""
