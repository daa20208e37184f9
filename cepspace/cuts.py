""" Generation and fiducial cuts """

from dataclasses import dataclass, fields, replace
from math import log
from typing import Optional

import torch
from torch import Tensor

from .errors import ConfigurationError
from .helper import ZERO_EPS, mass, pT, pseudorapidity, rapidity

# Lightest forward excitation, proton + pi0
M_EXCITED_MIN = 0.938272 + 0.134977


@dataclass(frozen=True)
class GenerationCuts:
    """
    Sampling boundaries shared read-only by all trials of a run.

    Fields:
        forward_pt_min/max: forward leg transverse momentum [GeV]
        kt_min/kt_max: intermediate difference momentum magnitude [GeV]
        rap_min/rap_max: central product rapidity
        Y_min/Y_max: central system rapidity (factorized)
        M_min/M_max: central system mass [GeV] (factorized)
        xi_min/xi_max: forward excitation M^2/s, None uses the technical default
    """

    forward_pt_min: float = 0.0
    forward_pt_max: float = 2.5
    kt_min: float = 0.0
    kt_max: float = 10.0
    rap_min: float = -2.0
    rap_max: float = 2.0
    Y_min: float = -2.0
    Y_max: float = 2.0
    M_min: float = 0.0
    M_max: float = 100.0
    xi_min: Optional[float] = None
    xi_max: Optional[float] = 0.05

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Raises ConfigurationError for empty or negative windows"""
        pairs = [
            ("forward_pt", self.forward_pt_min, self.forward_pt_max),
            ("kt", self.kt_min, self.kt_max),
            ("rap", self.rap_min, self.rap_max),
            ("Y", self.Y_min, self.Y_max),
            ("M", self.M_min, self.M_max),
        ]
        for name, low, high in pairs:
            if not low < high:
                raise ConfigurationError(
                    f"GenerationCuts: {name} window [{low}, {high}] is empty"
                )
        for name in ("forward_pt_min", "kt_min", "M_min"):
            if getattr(self, name) < 0:
                raise ConfigurationError(
                    f"GenerationCuts: {name} = {getattr(self, name)} is negative"
                )
        if self.xi_min is not None and self.xi_min <= 0:
            raise ConfigurationError(f"GenerationCuts: xi_min = {self.xi_min} <= 0")
        if self.xi_min is not None and self.xi_max is not None:
            if not self.xi_min < self.xi_max:
                raise ConfigurationError(
                    f"GenerationCuts: xi window [{self.xi_min}, {self.xi_max}] is empty"
                )

    @classmethod
    def from_dict(cls, card: dict) -> "GenerationCuts":
        """Build from a run-card style dictionary, unknown keys are an error"""
        known = {f.name for f in fields(cls)}
        unknown = set(card) - known
        if unknown:
            raise ConfigurationError(
                f"GenerationCuts: unknown cut parameter(s) {sorted(unknown)}"
            )
        return cls(**card)

    def with_technical_boundaries(self, s: float, excitation: int) -> "GenerationCuts":
        """Resolve the forward excitation window for a given s"""
        if excitation == 0:
            return self
        xi_min = self.xi_min if self.xi_min is not None else M_EXCITED_MIN**2 / s
        xi_max = self.xi_max if self.xi_max is not None else 0.05
        if not xi_min < xi_max:
            raise ConfigurationError(
                f"GenerationCuts: xi window [{xi_min}, {xi_max}] is empty for sqrt(s) = {s**0.5}"
            )
        return replace(self, xi_min=xi_min, xi_max=xi_max)

    @property
    def log_pt_range(self) -> tuple[float, float]:
        """Forward pt window in log-space, the lower edge is regulated by ZERO_EPS"""
        return log(self.forward_pt_min + ZERO_EPS), log(self.forward_pt_max)


@dataclass(frozen=True)
class FiducialCuts:
    """
    Optional fiducial cuts on the central products and the central system.
    None disables a bound.
    """

    pt_min: Optional[float] = None
    pt_max: Optional[float] = None
    eta_min: Optional[float] = None
    eta_max: Optional[float] = None
    M_min: Optional[float] = None
    M_max: Optional[float] = None
    Y_min: Optional[float] = None
    Y_max: Optional[float] = None

    def passes(self, p_system: Tensor, p_products: Tensor) -> Tensor:
        """
        Args:
            p_system (Tensor): central system momenta with shape=(b,4)
            p_products (Tensor): central products with shape=(b,K,4)

        Returns:
            ok (Tensor): boolean mask with shape=(b,)
        """
        ok = torch.ones(p_system.shape[0], dtype=torch.bool, device=p_system.device)
        pt = pT(p_products)
        eta = pseudorapidity(p_products)
        if self.pt_min is not None:
            ok &= (pt >= self.pt_min).all(dim=1)
        if self.pt_max is not None:
            ok &= (pt <= self.pt_max).all(dim=1)
        if self.eta_min is not None:
            ok &= (eta >= self.eta_min).all(dim=1)
        if self.eta_max is not None:
            ok &= (eta <= self.eta_max).all(dim=1)

        m_x = mass(p_system)
        y_x = rapidity(p_system)
        if self.M_min is not None:
            ok &= m_x >= self.M_min
        if self.M_max is not None:
            ok &= m_x <= self.M_max
        if self.Y_min is not None:
            ok &= y_x >= self.Y_min
        if self.Y_max is not None:
            ok &= y_x <= self.Y_max
        return ok
