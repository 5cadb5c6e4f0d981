# errors.py
"""
Error taxonomy for the particle field core.

Only ConfigurationError ever reaches the caller. The other two are raised
inside the sampling layer and recovered where they are caught: a
degenerate region is given zero particles, an exhausted rejection sampler
falls back to a deterministic position.
"""


class ConfigurationError(ValueError):
    """Invalid dimensions, counts, polygon data or profile fields."""


class DegenerateGeometryError(ValueError):
    """A shape region has zero area or volume and cannot be sampled."""


class SamplingExhaustion(RuntimeError):
    """A rejection sampler used its whole retry budget without acceptance.

    Attributes:
        accepted: boolean mask of candidates accepted before the budget ran out.
        candidates: the last candidate drawn for every point.
    """

    def __init__(self, message, accepted, candidates):
        super().__init__(message)
        self.accepted = accepted
        self.candidates = candidates
