""" Working (CM) frame to lab frame boost for asymmetric beams """

import logging

import torch
from torch import Tensor

from .base import PhaseSpaceMapping, TensorList
from .helper import boost, lsquare

logger = logging.getLogger(__name__)


class FrameBooster(PhaseSpaceMapping):
    """
    All kinematics are built in the frame where the beams are
    back-to-back with total momentum (sqrt(s), 0, 0, 0). For
    asymmetric beams the produced momenta are boosted along
    beam1 + beam2 into the lab, otherwise this is the identity.
    """

    PZ_TOLERANCE = 1e-6

    def __init__(self, pbeam: Tensor):
        """
        Args:
            pbeam (Tensor): lab frame beam momenta with shape=(2,4)
        """
        dims_in = [(None, 4)]
        dims_out = [(None, 4)]
        super().__init__(dims_in, dims_out)

        beamsum = pbeam.sum(dim=0)
        self.register_buffer("beamsum", beamsum)
        self.sqrt_s = lsquare(beamsum).sqrt().item()
        self.active = abs(beamsum[3].item()) > self.PZ_TOLERANCE
        if self.active:
            logger.info(
                "Asymmetric beams, boosting to the lab with beta_z = %.6g",
                (beamsum[3] / beamsum[0]).item(),
            )

    def cm_beams(self, pbeam: Tensor) -> Tensor:
        """Beams in the working frame with shape=(2,4)"""
        if not self.active:
            return pbeam
        return boost(pbeam, self.beamsum.expand_as(pbeam), inverse=True)

    def _map(self, inputs: TensorList, condition=None):
        """Boost from the working frame to the lab

        Args:
            inputs (TensorList): [p] momenta with shape=(b,n,4)

        Returns:
            p_lab (Tensor): lab frame momenta with shape=(b,n,4)
            det (Tensor): ones with shape=(b,), boosts are volume preserving
        """
        del condition
        p = inputs[0]
        det = torch.ones(p.shape[0], dtype=p.dtype, device=p.device)
        if not self.active:
            return (p,), det
        return (boost(p, self.beamsum.to(p.dtype).expand_as(p)),), det

    def _map_inverse(self, inputs: TensorList, condition=None):
        """Boost from the lab back to the working frame"""
        del condition
        p = inputs[0]
        det = torch.ones(p.shape[0], dtype=p.dtype, device=p.device)
        if not self.active:
            return (p,), det
        return (boost(p, self.beamsum.to(p.dtype).expand_as(p), inverse=True),), det
