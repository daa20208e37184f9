""" 2 -> N continuum skeleton

    (p1) beam1 ------------*------------ leg1 (+z)
                           |
                           *==== P_1
                           |  ...          central products
                           *==== P_K
                           |
    (p2) beam2 ------------*------------ leg2 (-z)

The K central products are sampled directly in (kt, phi, y) of the
K-1 difference momenta q_i = P_i - P_{i+1} and their rapidities,
the transverse momenta follow from a linear system and the forward
longitudinal momenta from energy-momentum conservation.
"""

from typing import Optional

import torch
from torch import Tensor

from .event import SampledPoint
from .helper import polar_to_vec2, transverse_to_fourvector
from .linear import LinearMomentumSolver
from .longitudinal import LongitudinalBalancer
from .sampler import SkeletonSampler
from .volume import VolumeWeightCalculator


class ContinuumSampler(SkeletonSampler):
    """
    2 -> N phase space with N = K + 2, K >= 2 central products.

    Random vector layout, dimension 3(K+2)-4 (+1/+2 with excitation):

        [pt1, pt2, phi1, phi2, kt_1..kt_{K-1}, phi_1..phi_{K-1}, y_1..y_K, xi..]
    """

    topology = "continuum"

    def __init__(self, pbeam: Tensor, tree, **kwargs):
        super().__init__(pbeam, tree, **kwargs)
        self.linear = LinearMomentumSolver(self.nparticles)
        self.balancer = LongitudinalBalancer(self.sqrt_s)
        self.calculator = VolumeWeightCalculator(self.central.cuts, self.central.forward_volume)
        self._volume = self.calculator.continuum_volume(self.nparticles)
        self._log_setup()

    @property
    def dimension(self) -> int:
        return 3 * (self.nparticles + 2) - 4 + self.excitation

    @property
    def volume(self) -> float:
        return self._volume

    def sample(self, r: Tensor, generator: Optional[torch.Generator] = None) -> SampledPoint:
        """Build a batch of continuum events

        Args:
            r (Tensor): random numbers with shape=(b, dimension)
            generator (torch.Generator, optional): private generator for the
                offshell masses and decays. Defaults to the sampler's own.

        Returns:
            SampledPoint: kinematics, volume, weights and validity flags
        """
        generator = generator or self.generator
        draws = self.central.sample(r, generator)

        # Forward transverse momenta
        pt_legs = polar_to_vec2(draws.pt, draws.phi)

        # Central transverse momenta from the difference momenta
        q = polar_to_vec2(draws.kt, draws.phi_kt)
        (pt_central,), _ = self.linear.map([q], condition=[pt_legs[:, 0], pt_legs[:, 1]])

        # Note the offshell masses
        p_central = transverse_to_fourvector(pt_central, draws.m_central, draws.y)
        p_x = p_central.sum(dim=1)

        # Forward longitudinal momenta
        (pz, energy, branch_ok), J = self.balancer.map(
            [draws.m_forward, draws.pt], condition=[p_x[:, 3], p_x[:, 0]]
        )
        p_legs = torch.cat([energy[..., None], pt_legs, pz[..., None]], dim=-1)

        pfinal_cm = torch.cat([p_x[:, None], p_legs, p_central], dim=1)

        weight = self.calculator.continuum_weight(
            draws.pt,
            energy,
            J,
            draws.kt,
            self.linear.jacobian,
            draws.forward_jacobian,
        )
        cascade = torch.ones_like(weight)
        return self._finish(
            pfinal_cm,
            draws.offshell,
            branch_ok,
            None,
            weight,
            cascade,
            generator,
        )
