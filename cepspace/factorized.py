""" 2 -> 3 factorized skeleton

    (p1) beam1 ------------*------------ leg1 (+z)
                           |
                           *==== X(M^2, Y) -> K products
                           |
    (p2) beam2 ------------*------------ leg2 (-z)

The central system is a single pseudo-particle of mass M and
rapidity Y which decays isotropically. The phase space factorizes as

    dPhi_N = dPhi_3(p1, p2, X) dM^2/(2pi) dPhi_K(X; P_1..P_K)
"""

import logging
from math import pi
from typing import Optional

import torch
from torch import Tensor, sqrt

from .decays import decay_dimension, decay_mapping
from .errors import ConfigurationError, IterationExhausted
from .event import SampledPoint
from .helper import polar_to_vec2
from .longitudinal import LongitudinalBalancer
from .sampler import SkeletonSampler
from .volume import VolumeWeightCalculator

logger = logging.getLogger(__name__)

# Margin above the sum of the daughter masses [GeV]
MASS_MARGIN = 1e-4


class FactorizedSampler(SkeletonSampler):
    """
    2 -> 3 skeleton with the central system decaying to K >= 2 products.

    Random vector layout, dimension 6 (+1/+2 with excitation):

        [pt1, pt2, phi1, phi2, Y, M^2, xi..]
    """

    topology = "factorized"
    MAX_TRIALS = int(1e5)

    def __init__(self, pbeam: Tensor, tree, **kwargs):
        super().__init__(pbeam, tree, **kwargs)
        self.balancer = LongitudinalBalancer(self.sqrt_s)
        self.decay = decay_mapping(self.nparticles)
        self.calculator = VolumeWeightCalculator(self.central.cuts, self.central.forward_volume)

        # Widest mass window, reached with all products at their lowest mass
        m_lowest = sum(
            self.central.mass_sampler.window(tree, i)[0] for i in tree.roots
        )
        self.M_max = min(self.sqrt_s - sum(self.beam_masses), self.cuts.M_max)
        M_min = max(m_lowest + MASS_MARGIN, self.cuts.M_min)
        if not M_min < self.M_max:
            raise ConfigurationError(
                f"FactorizedSampler: central mass window [{M_min:.4f}, {self.M_max:.4f}] GeV "
                "is empty, check the decay mode and the M cuts"
            )
        self.M2_span = self.M_max**2 - M_min**2
        self._volume = self.calculator.factorized_volume(self.M2_span)
        self._log_setup()

    @property
    def dimension(self) -> int:
        return 6 + self.excitation

    @property
    def volume(self) -> float:
        return self._volume

    def mass_window(self, n: int, generator=None, dtype=None) -> tuple[dict, Tensor]:
        """Offshell masses with a non-empty central mass window

        Returns:
            offshell (dict): node -> mass with shape=(n,)
            M_min (Tensor): lower edge of the window with shape=(n,)

        Raises:
            IterationExhausted: if some trial has no open window after MAX_TRIALS
        """
        offshell = self.central.central_masses(n, generator, dtype)
        for trial in range(self.MAX_TRIALS):
            m_sum = torch.stack([offshell[i] for i in self.tree.roots], dim=1).sum(dim=1)
            M_min = (m_sum + MASS_MARGIN).clamp(min=self.cuts.M_min)
            closed = M_min >= self.M_max
            if not closed.any():
                if trial > 0:
                    logger.debug("FactorizedSampler: mass window open after %d resamplings", trial)
                return offshell, M_min
            retry = self.central.central_masses(int(closed.sum()), generator, dtype)
            for i in self.tree.roots:
                offshell[i] = offshell[i].clone()
                offshell[i][closed] = retry[i]
        raise IterationExhausted(
            f"FactorizedSampler: no open central mass window after {self.MAX_TRIALS} "
            "trials, check the decay mode and cuts"
        )

    def sample(self, r: Tensor, generator: Optional[torch.Generator] = None) -> SampledPoint:
        """Build a batch of factorized events

        Args:
            r (Tensor): random numbers with shape=(b, dimension)
            generator (torch.Generator, optional): private generator for the
                offshell masses and decays. Defaults to the sampler's own.

        Returns:
            SampledPoint: kinematics, volume, weights and validity flags
        """
        generator = generator or self.generator
        self.central.check_width(r, self.dimension, self.__class__.__name__)
        n = r.shape[0]
        cuts = self.central.cuts

        pt, phi = self.central.forward_legs(r[:, :4])
        Y = cuts.Y_min + (cuts.Y_max - cuts.Y_min) * r[:, 4]

        offshell, M_min = self.mass_window(n, generator, r.dtype)
        M2_min = M_min**2
        M2_span = self.M_max**2 - M2_min
        M2 = M2_min + M2_span * r[:, 5]
        m_forward, forward_jacobian = self.central.forward_masses(r[:, 6:], n)

        # Final state transverse momenta
        pt_legs = polar_to_vec2(pt, phi)
        pt_x = -pt_legs.sum(dim=1)

        # Central system pz and E
        mt_x = sqrt(M2 + pt_x.square().sum(dim=1))
        p_x = torch.cat(
            [
                (mt_x * torch.cosh(Y))[:, None],
                pt_x,
                (mt_x * torch.sinh(Y))[:, None],
            ],
            dim=1,
        )

        (pz, energy, branch_ok), J = self.balancer.map(
            [m_forward, pt], condition=[p_x[:, 3], p_x[:, 0]]
        )
        p_legs = torch.cat([energy[..., None], pt_legs, pz[..., None]], dim=-1)

        # First level decay of the central system, done in the working frame
        m_central = torch.stack([offshell[i] for i in self.tree.roots], dim=1)
        r_decay = torch.rand(
            n, decay_dimension(self.nparticles), generator=generator, dtype=r.dtype
        )
        (p_central, decay_ok), phase_space = self.decay.map([r_decay, m_central], condition=[p_x])

        pfinal_cm = torch.cat([p_x[:, None], p_legs, p_central], dim=1)

        weight = self.calculator.factorized_weight(
            pt, energy, J, forward_jacobian, M2_span / self.M2_span
        )
        # /(2pi) from the phase-space factorization
        cascade = phase_space / (2 * pi)
        return self._finish(
            pfinal_cm,
            offshell,
            branch_ok & decay_ok,
            m_forward,
            weight,
            cascade,
            generator,
        )
