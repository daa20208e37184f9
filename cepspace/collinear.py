""" 2 -> 1 x 1 -> N collinear skeleton

Two collinear partons with momentum fractions x1, x2 fuse into the
central system, the beam remnants are the forward legs:

    q1 = x1 sqrt(s)/2 (1, 0, 0, 1),  q2 = x2 sqrt(s)/2 (1, 0, 0, -1)
    X  = q1 + q2,                    leg_i = beam_i - q_i

Parton luminosities and flux belong to the matrix element, volume
and weight of this skeleton are unity.
"""

import logging
from typing import Optional

import torch
from torch import Tensor

from .decays import decay_dimension, decay_mapping
from .event import SampledPoint
from .sampler import SkeletonSampler
from .volume import VolumeWeightCalculator

logger = logging.getLogger(__name__)


class CollinearSampler(SkeletonSampler):
    """
    Random vector layout, dimension 2:

        [x1, x2]

    Trials where x1 x2 s stays below the squared sum of the product
    masses after MAX_TRIALS resamplings of the offshell masses are
    rejected.
    """

    topology = "collinear"
    MAX_TRIALS = int(1e4)

    def __init__(self, pbeam: Tensor, tree, **kwargs):
        super().__init__(pbeam, tree, **kwargs)
        self.decay = decay_mapping(self.nparticles)
        self.m_floor = sum(self.central.mass_sampler.window(tree, i)[0] for i in tree.roots)
        self._log_setup()

    @property
    def dimension(self) -> int:
        return 2

    @property
    def volume(self) -> float:
        return VolumeWeightCalculator.collinear_volume()

    def offshell_masses(self, shat: Tensor, generator=None) -> tuple[dict, Tensor]:
        """Offshell masses below sqrt(shat), shape=(b,) each, plus the open mask"""
        n = shat.shape[0]
        offshell = self.central.central_masses(n, generator, shat.dtype)

        def closed_window():
            m_sum = torch.stack([offshell[i] for i in self.tree.roots], dim=1).sum(dim=1)
            return shat <= m_sum**2

        # Trials below the lowest reachable threshold are not retried
        hopeless = shat <= self.m_floor**2
        for _ in range(self.MAX_TRIALS):
            closed = closed_window() & ~hopeless
            if not closed.any():
                break
            retry = self.central.central_masses(int(closed.sum()), generator, shat.dtype)
            for i in self.tree.roots:
                offshell[i] = offshell[i].clone()
                offshell[i][closed] = retry[i]
        else:
            logger.debug("CollinearSampler: %d trials exhausted the mass retries", int(closed.sum()))
        return offshell, ~closed_window()

    def sample(self, r: Tensor, generator: Optional[torch.Generator] = None) -> SampledPoint:
        """Build a batch of collinear events

        Args:
            r (Tensor): random numbers [x1, x2] with shape=(b,2)
            generator (torch.Generator, optional): private generator for the
                offshell masses and decays. Defaults to the sampler's own.

        Returns:
            SampledPoint: kinematics, volume, weights and validity flags
        """
        generator = generator or self.generator
        self.central.check_width(r, self.dimension, self.__class__.__name__)
        n = r.shape[0]
        x1, x2 = r[:, 0], r[:, 1]
        shat = x1 * x2 * self.s

        offshell, open_ok = self.offshell_masses(shat, generator)

        # Partons in the working frame
        half = self.sqrt_s / 2
        q1 = torch.zeros(n, 4, dtype=r.dtype, device=r.device)
        q2 = torch.zeros(n, 4, dtype=r.dtype, device=r.device)
        q1[:, 0] = x1 * half
        q1[:, 3] = x1 * half
        q2[:, 0] = x2 * half
        q2[:, 3] = -x2 * half
        p_x = q1 + q2

        pbeam_cm = self.pbeam_cm.to(r.dtype)
        p_legs = torch.stack([pbeam_cm[0] - q1, pbeam_cm[1] - q2], dim=1)

        m_central = torch.stack([offshell[i] for i in self.tree.roots], dim=1)
        r_decay = torch.rand(
            n, decay_dimension(self.nparticles), generator=generator, dtype=r.dtype
        )
        (p_central, decay_ok), phase_space = self.decay.map([r_decay, m_central], condition=[p_x])

        pfinal_cm = torch.cat([p_x[:, None], p_legs, p_central], dim=1)
        weight = VolumeWeightCalculator.collinear_weight(n, dtype=r.dtype)
        return self._finish(
            pfinal_cm,
            offshell,
            open_ok & decay_ok,
            None,
            weight,
            phase_space,
            generator,
        )
