""" Integral volumes and phase-space weights of the skeleton topologies.

The Monte Carlo estimate of a phase-space integral is

    I = volume * < weight * |M|^2 * ... >

where ``volume`` is the size of the sampled hypercube in physical
units (point independent) and ``weight`` the jacobian from the flat
measure to the Lorentz invariant phase space (point dependent).
"""

from math import pi

import torch
from torch import Tensor

from .cuts import GenerationCuts


class VolumeWeightCalculator:
    """
    Args:
        cuts (GenerationCuts): resolved generation cuts
        forward_volume (float): (Delta log pt)^2 (2pi)^2 times the
            forward excitation volume
    """

    def __init__(self, cuts: GenerationCuts, forward_volume: float):
        self.cuts = cuts
        self.forward_volume = forward_volume

    # 2 -> N continuum

    def continuum_volume(self, nparticles: int) -> float:
        cuts = self.cuts
        K = nparticles
        return (
            self.forward_volume
            * (cuts.kt_max - cuts.kt_min) ** (K - 1)
            * (2 * pi) ** (K - 1)
            * (cuts.rap_max - cuts.rap_min) ** K
        )

    def continuum_weight(
        self,
        pt: Tensor,
        energy: Tensor,
        J: Tensor,
        kt: Tensor,
        transverse_jacobian: float,
        forward_jacobian: Tensor,
    ) -> Tensor:
        """
        Args:
            pt (Tensor): forward leg pt with shape=(b,2)
            energy (Tensor): forward leg energies with shape=(b,2)
            J (Tensor): longitudinal jacobian with shape=(b,)
            kt (Tensor): difference momentum magnitudes with shape=(b,K-1)
            transverse_jacobian (float): |det dP/dq|^2 of the linear system
            forward_jacobian (Tensor): excitation jacobian with shape=(b,)

        Returns:
            weight (Tensor): with shape=(b,)
        """
        K = kt.shape[1] + 1
        N = K + 2

        # d^3p/(2E) = pt^2 dlog(pt) dphi dpz/(2E) for both legs
        legs = (pt / (2 * energy)).prod(dim=1) * pt.prod(dim=1)

        # d^2q = kt dkt dphi, d^2p/(2E) = d^2pt dy/2 for the central products
        central = kt.prod(dim=1) * transverse_jacobian / 2**K

        weight = (2 * pi) ** (4 - 3 * N) * legs * central * J * forward_jacobian
        return _finite(weight)

    # 2 -> 3 factorized

    def factorized_volume(self, M2_span: float) -> float:
        """(M^2_max - M^2_min) Delta Y times the forward volume"""
        cuts = self.cuts
        return M2_span * (cuts.Y_max - cuts.Y_min) * self.forward_volume

    def factorized_weight(
        self,
        pt: Tensor,
        energy: Tensor,
        J: Tensor,
        forward_jacobian: Tensor,
        window_ratio: Tensor,
    ) -> Tensor:
        """
        Args:
            pt (Tensor): forward leg pt with shape=(b,2)
            energy (Tensor): forward leg energies with shape=(b,2)
            J (Tensor): longitudinal jacobian with shape=(b,)
            forward_jacobian (Tensor): excitation jacobian with shape=(b,)
            window_ratio (Tensor): per-point M^2 window over the nominal one
                with shape=(b,), differs from 1 for offshell products

        Returns:
            weight (Tensor): with shape=(b,)
        """
        legs = (pt / (2 * energy)).prod(dim=1) * pt.prod(dim=1)
        weight = 0.5 * (2 * pi) ** -5 * legs * J * forward_jacobian * window_ratio
        return _finite(weight)

    # 2 -> 1 x 1 -> N collinear

    @staticmethod
    def collinear_volume() -> float:
        return 1.0

    @staticmethod
    def collinear_weight(n: int, dtype=None) -> Tensor:
        return torch.ones(n, dtype=dtype or torch.get_default_dtype())


def _finite(weight: Tensor) -> Tensor:
    return torch.where(torch.isfinite(weight), weight, torch.zeros_like(weight))
