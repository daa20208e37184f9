""" Mapping of the uniform random vector onto the skeleton variables """

from dataclasses import dataclass
from math import log, pi
from typing import Optional

import torch
from torch import Tensor, exp

from .cuts import GenerationCuts
from .decaytree import DecayTree, OffShellMassSampler
from .errors import ConfigurationError


@dataclass
class CentralDraws:
    """Skeleton variables of a batch, all leading dimensions are b"""

    pt: Tensor  # forward leg pt magnitudes (b,2)
    phi: Tensor  # forward leg azimuths (b,2)
    kt: Tensor  # difference momentum magnitudes (b,K-1)
    phi_kt: Tensor  # difference momentum azimuths (b,K-1)
    y: Tensor  # central product rapidities (b,K)
    m_forward: Tensor  # forward leg masses (b,2)
    m_central: Tensor  # offshell masses of the first level products (b,K)
    forward_jacobian: Tensor  # (b,)
    offshell: dict


class CentralMassSampler:
    """
    Consumes the positional prefix of the random vector

        [pt1, pt2, phi1, phi2, kt_1..kt_{K-1}, phi_1..phi_{K-1}, y_1..y_K, xi..]

    The forward pt are log-uniform, which flattens the approximate
    1/pt^2 shape of the forward scattering. Forward excitation masses
    are sampled log-uniformly in xi = M^2/s for excitation = 1 (leg 1)
    or 2 (both legs).
    """

    def __init__(
        self,
        nparticles: int,
        cuts: GenerationCuts,
        s: float,
        beam_masses: tuple[float, float],
        tree: Optional[DecayTree] = None,
        mass_sampler: Optional[OffShellMassSampler] = None,
        excitation: int = 0,
    ):
        if excitation not in (0, 1, 2):
            raise ConfigurationError(
                f"CentralMassSampler: excitation = {excitation} must be 0, 1 or 2"
            )
        if tree is not None and len(tree) != nparticles:
            raise ConfigurationError(
                f"CentralMassSampler: decay tree first level topology = {len(tree)} "
                f"(should be {nparticles} for this process)"
            )
        self.nparticles = nparticles
        self.excitation = excitation
        self.s = s
        self.beam_masses = beam_masses
        self.tree = tree
        self.mass_sampler = mass_sampler or OffShellMassSampler()
        self.cuts = cuts.with_technical_boundaries(s, excitation)

    @property
    def dimension(self) -> int:
        return 4 + 2 * (self.nparticles - 1) + self.nparticles + self.excitation

    @property
    def forward_volume(self) -> float:
        """(Delta log pt)^2 (2pi)^2 times the excitation volume"""
        log_min, log_max = self.cuts.log_pt_range
        return (log_max - log_min) ** 2 * (2 * pi) ** 2 * self.forward_mass_volume

    @property
    def forward_mass_volume(self) -> float:
        if self.excitation == 0:
            return 1.0
        return (log(self.cuts.xi_max) - log(self.cuts.xi_min)) ** self.excitation

    def check_width(self, r: Tensor, dimension: int, owner: str) -> None:
        if r.dim() != 2 or r.shape[1] != dimension:
            raise ConfigurationError(
                f"{owner}: random vector shape {tuple(r.shape)}, expected (b, {dimension})"
            )

    def forward_legs(self, r: Tensor) -> tuple[Tensor, Tensor]:
        """Forward pt magnitudes and azimuths from r with shape=(b,4)"""
        log_min, log_max = self.cuts.log_pt_range
        pt = exp(log_min + (log_max - log_min) * r[:, :2])
        phi = 2 * pi * r[:, 2:4]
        return pt, phi

    def forward_masses(self, r: Tensor, n: int) -> tuple[Tensor, Tensor]:
        """Forward leg masses and their jacobian

        Args:
            r (Tensor): trailing excitation draws with shape=(b,excitation)
            n (int): batch size

        Returns:
            m_forward (Tensor): masses with shape=(b,2)
            jac (Tensor): prod M^2/(2pi) over the excited legs with shape=(b,)
        """
        dtype = r.dtype
        m_forward = torch.tensor(self.beam_masses, dtype=dtype).expand(n, 2).clone()
        jac = torch.ones(n, dtype=dtype)
        if self.excitation == 0:
            return m_forward, jac

        log_min, log_max = log(self.cuts.xi_min), log(self.cuts.xi_max)
        for k in range(self.excitation):
            xi = exp(log_min + (log_max - log_min) * r[:, k])
            M2 = xi * self.s
            m_forward[:, k] = M2.sqrt()
            # dM^2 = M^2 dlog(xi)
            jac = jac * M2 / (2 * pi)
        return m_forward, jac

    def central_masses(self, n: int, generator=None, dtype=None) -> dict:
        """Offshell masses of the first level products, node -> shape=(n,)"""
        if self.tree is None:
            raise ConfigurationError("CentralMassSampler: no decay tree given")
        return {
            i: self.mass_sampler.sample(self.tree, i, n, generator, dtype)
            for i in self.tree.roots
        }

    def sample(self, r: Tensor, generator: Optional[torch.Generator] = None) -> CentralDraws:
        """Map the random vector with shape=(b, dimension) onto the skeleton"""
        self.check_width(r, self.dimension, self.__class__.__name__)
        K = self.nparticles
        n = r.shape[0]
        cuts = self.cuts

        pt, phi = self.forward_legs(r[:, :4])

        ind = 4
        kt = cuts.kt_min + (cuts.kt_max - cuts.kt_min) * r[:, ind : ind + K - 1]
        ind += K - 1
        phi_kt = 2 * pi * r[:, ind : ind + K - 1]
        ind += K - 1
        y = cuts.rap_min + (cuts.rap_max - cuts.rap_min) * r[:, ind : ind + K]
        ind += K

        m_forward, jac = self.forward_masses(r[:, ind:], n)

        offshell = self.central_masses(n, generator, r.dtype)
        m_central = torch.stack([offshell[i] for i in self.tree.roots], dim=1)

        return CentralDraws(
            pt=pt,
            phi=phi,
            kt=kt,
            phi_kt=phi_kt,
            y=y,
            m_forward=m_forward,
            m_central=m_central,
            forward_jacobian=jac,
            offshell=offshell,
        )
