""" Per-trial containers: kinematics, Lorentz scalars and validity flags """

from dataclasses import dataclass, field
from typing import Optional

import torch
from torch import Tensor

from .helper import lsquare


@dataclass
class LorentzScalars:
    """Mandelstam invariants of the 2 -> 3 skeleton, each with shape=(b,)"""

    s: Tensor
    t1: Tensor
    t2: Tensor
    s1: Tensor
    s2: Tensor
    m2: Tensor
    xi1: Tensor
    xi2: Tensor


@dataclass
class KinematicEvent:
    """
    Kinematics of a batch of trials.

    Fields:
        pbeam (Tensor): beam momenta with shape=(2,4)
        sqrt_s (float): CM energy
        pfinal (Tensor): produced momenta with shape=(b,3+K,4), slot 0 is the
            central system, slots 1-2 the forward legs and 3.. the central products
        offshell (dict): node index -> sampled mass with shape=(b,)
        decays (dict): node index -> lab momentum with shape=(b,4) for all
            nodes of the decay tree
        scalars (LorentzScalars): filled once the kinematics are built
    """

    pbeam: Tensor
    sqrt_s: float
    pfinal: Tensor
    offshell: dict = field(default_factory=dict)
    decays: dict = field(default_factory=dict)
    leaves: tuple = ()
    scalars: Optional[LorentzScalars] = None

    @property
    def s(self) -> float:
        return self.sqrt_s**2

    @property
    def p_system(self) -> Tensor:
        return self.pfinal[:, 0]

    @property
    def p_forward(self) -> Tensor:
        return self.pfinal[:, 1:3]

    @property
    def p_products(self) -> Tensor:
        return self.pfinal[:, 3:]

    def final_state(self) -> Tensor:
        """Forward legs and all stable final state particles with shape=(b,n,4)"""
        stable = [self.decays[i] for i in self.leaves]
        return torch.cat([self.p_forward, torch.stack(stable, dim=1)], dim=1)

    def emc_residual(self) -> Tensor:
        """beam1 + beam2 - (p1 + p2 + pX) with shape=(b,4)"""
        beamsum = self.pbeam.sum(dim=0)
        return beamsum - self.pfinal[:, :3].sum(dim=1)

    def compute_scalars(self, pfinal_cm: Tensor, pbeam_cm: Tensor) -> LorentzScalars:
        """Mandelstam invariants, xi is taken from the working (CM) frame"""
        p1, p2, px = self.pfinal[:, 1], self.pfinal[:, 2], self.pfinal[:, 0]
        b1, b2 = self.pbeam[0], self.pbeam[1]
        n = px.shape[0]
        self.scalars = LorentzScalars(
            s=torch.full((n,), self.s, dtype=px.dtype, device=px.device),
            t1=lsquare(b1 - p1),
            t2=lsquare(b2 - p2),
            s1=lsquare(px + p1),
            s2=lsquare(px + p2),
            m2=lsquare(px),
            xi1=1 - pfinal_cm[:, 1, 3] / pbeam_cm[0, 3],
            xi2=1 - pfinal_cm[:, 2, 3] / pbeam_cm[1, 3],
        )
        return self.scalars


@dataclass
class AuxIntegrationData:
    """Validity flags of a batch plus the importance sampling weight
    of the outer integration driver, all with shape=(b,)"""

    kinematics_ok: Tensor
    fiducial_ok: Tensor
    veto_ok: Tensor
    vegas_weight: Optional[Tensor] = None

    @property
    def valid(self) -> Tensor:
        return self.kinematics_ok & self.fiducial_ok & self.veto_ok

    def acceptance(self) -> float:
        return self.valid.double().mean().item()


@dataclass
class SampledPoint:
    """Output of a sampler call"""

    event: KinematicEvent
    volume: float
    weight: Tensor
    cascade: Tensor
    aux: AuxIntegrationData

    @property
    def valid(self) -> Tensor:
        return self.aux.valid
