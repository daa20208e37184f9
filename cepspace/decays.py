""" Decay phase space of the central system and the recursive decay tree.

Two-body decays are isotropic in the rest frame of the parent,
n-body decays are built as a chain of two-body decays following
the recursive factorization of the phase space

    dPhi_n(P; p1..pn) = dPhi_2(P; p1, Q2) dQ2^2/(2pi) dPhi_{n-1}(Q2; p2..pn)

with the intermediate Q_i^2 sampled uniformly. All weights include
the (2pi)^(4-3n) normalization of the Lorentz invariant phase space.
"""

from math import pi
from typing import Optional

import torch
from torch import Tensor, sqrt

from .base import PhaseSpaceMapping, TensorList
from .decaytree import DecayTree, OffShellMassSampler
from .helper import boost, is_finite, kaellen, lsquare, rotate_zy, two_particle_density


class TwoBodyDecay(PhaseSpaceMapping):
    """
    Isotropic 2-particle decay of a lab frame momentum, based on the mapping described in
        [1] https://arxiv.org/abs/hep-ph/0008033
    """

    def __init__(self):
        dims_in = [(2,), (2,)]
        dims_out = [(2, 4)]
        dims_c = [(4,)]
        super().__init__(dims_in, dims_out, dims_c)

    def _map(self, inputs: TensorList, condition: TensorList):
        """Map from random numbers to momenta

        Args:
            inputs (TensorList): list of two tensors [r, m_out]
                r: random numbers with shape=(b,2)
                m_out: (virtual) masses of outgoing particles with shape=(b,2)
            condition (TensorList): [p0] decaying momentum (lab frame) with shape=(b,4)

        Returns:
            p_decay (Tensor): decay momenta (lab frame) with shape=(b,2,4)
            ok (Tensor): decay kinematically open with shape=(b,)
            det (Tensor): Phi_2 including (2pi)^-2 with shape=(b,)
        """
        r, m_out = inputs[0], inputs[1]
        p0 = condition[0]
        s = lsquare(p0)
        m1 = m_out[:, 0]
        m2 = m_out[:, 1]
        ok = (s > 0) & (sqrt(s.clamp(min=0.0)) >= m1 + m2)

        # Keep closed channels finite, they are masked anyway
        s_safe = torch.where(ok, s, (m1 + m2) ** 2 + 1.0)

        # Define the angles
        phi = 2 * pi * r[:, 0]
        costheta = 2 * r[:, 1] - 1

        # Define the momenta (in COM frame of decaying particle)
        p1 = torch.zeros(r.shape[0], 4, dtype=p0.dtype, device=p0.device)
        p1[:, 0] = (s_safe + m1**2 - m2**2) / (2 * sqrt(s_safe))
        p1[:, 3] = sqrt(kaellen(s_safe, m1**2, m2**2).clamp(min=0.0)) / (2 * sqrt(s_safe))

        # First rotate, then boost into lab-frame
        p1 = rotate_zy(p1, phi, costheta)
        p1 = boost(p1, p0)
        p2 = p0 - p1

        gs = two_particle_density(s_safe, m1**2, m2**2) / (2 * pi) ** 2
        p_decay = torch.stack([p1, p2], dim=1)
        ok &= is_finite(p_decay, gs)

        return (p_decay, ok), torch.where(ok, gs, torch.zeros_like(gs))


class NBodyDecay(PhaseSpaceMapping):
    """
    n-particle decay (n >= 3) as a chain of n-1 isotropic two-body
    decays. Uses n-2 random numbers for the intermediate masses and
    2(n-1) for the angles, i.e. 3n-4 in total.
    """

    def __init__(self, nparticles: int):
        dims_in = [(3 * nparticles - 4,), (nparticles,)]
        dims_out = [(nparticles, 4)]
        dims_c = [(4,)]
        super().__init__(dims_in, dims_out, dims_c)
        self.nparticles = nparticles
        self.two_body = TwoBodyDecay()

    def _map(self, inputs: TensorList, condition: TensorList):
        """Map from random numbers to momenta

        Args:
            inputs (TensorList): [r, m_out]
                r: random numbers with shape=(b,3n-4)
                m_out: masses of the outgoing particles with shape=(b,n)
            condition (TensorList): [p0] decaying momentum (lab frame) with shape=(b,4)

        Returns:
            p_decay (Tensor): decay momenta (lab frame) with shape=(b,n,4)
            ok (Tensor): kinematically allowed with shape=(b,)
            det (Tensor): Phi_n including (2pi)^(4-3n) with shape=(b,)
        """
        r, m_out = inputs[0], inputs[1]
        p0 = condition[0]
        n = self.nparticles
        r_mass, r_angles = r[:, : n - 2], r[:, n - 2 :]

        # Minimal mass of the subsystem (p_i, ..., p_n)
        m_tail = torch.flip(torch.cumsum(torch.flip(m_out, [1]), dim=1), [1])

        ok = torch.ones(r.shape[0], dtype=torch.bool, device=r.device)
        det = torch.ones(r.shape[0], dtype=p0.dtype, device=p0.device)
        M_prev = sqrt(lsquare(p0).clamp(min=0.0))
        ok &= M_prev >= m_tail[:, 0]

        Q = p0
        p_out = []
        for i in range(n - 1):
            if i < n - 2:
                # Intermediate mass of (p_{i+1}, ..., p_n)
                s_low = m_tail[:, i + 1] ** 2
                s_high = (M_prev - m_out[:, i]).clamp(min=0.0) ** 2
                ok &= s_high > s_low
                s_i = s_low + (s_high - s_low) * r_mass[:, i]
                det = det * (s_high - s_low).clamp(min=0.0) / (2 * pi)
                M_next = sqrt(s_i)
            else:
                M_next = m_out[:, n - 1]

            m_pair = torch.stack([m_out[:, i], M_next], dim=1)
            (pair, pair_ok), g2 = self.two_body.map(
                [r_angles[:, 2 * i : 2 * i + 2], m_pair], condition=[Q]
            )
            ok &= pair_ok
            det = det * g2
            p_out.append(pair[:, 0])
            Q = pair[:, 1]
            M_prev = M_next

        p_out.append(Q)
        p_decay = torch.stack(p_out, dim=1)
        ok &= is_finite(p_decay, det)
        return (p_decay, ok), torch.where(ok, det, torch.zeros_like(det))


def decay_mapping(nparticles: int) -> PhaseSpaceMapping:
    """Decay construction for a given multiplicity"""
    if nparticles == 2:
        return TwoBodyDecay()
    return NBodyDecay(nparticles)


def decay_dimension(nparticles: int) -> int:
    """Random numbers needed by the decay construction"""
    return 2 if nparticles == 2 else 3 * nparticles - 4


class DecayTreeRecursor:
    """
    Builds the kinematics of all nodes below the first level central
    products. The first level momenta and offshell masses are provided
    by the sampler, daughters get fresh offshell masses, decay in the
    rest frame of the parent and are boosted back into the lab.
    A failure at any depth invalidates the trial.
    """

    def __init__(
        self,
        tree: DecayTree,
        mass_sampler: Optional[OffShellMassSampler] = None,
    ):
        self.tree = tree
        self.mass_sampler = mass_sampler or OffShellMassSampler()
        self.mappings = {
            i: decay_mapping(len(tree.children(i))) for i in tree.decaying()
        }

    def run(
        self,
        momenta: dict,
        offshell: dict,
        generator: Optional[torch.Generator] = None,
    ) -> tuple[Tensor, Tensor]:
        """
        Args:
            momenta (dict): node -> lab momentum with shape=(b,4), filled for
                the roots on input and for all nodes on output
            offshell (dict): node -> mass with shape=(b,), same convention
            generator (torch.Generator, optional): private generator of the worker

        Returns:
            ok (Tensor): all decays kinematically allowed with shape=(b,)
            cascade (Tensor): product of all decay phase space weights with shape=(b,)
        """
        p_root = momenta[self.tree.roots[0]]
        ok = torch.ones(p_root.shape[0], dtype=torch.bool, device=p_root.device)
        cascade = torch.ones(p_root.shape[0], dtype=p_root.dtype, device=p_root.device)
        for i in self.tree.roots:
            ok, cascade = self._decay(i, momenta, offshell, ok, cascade, generator)
        return ok, cascade

    def _decay(self, i, momenta, offshell, ok, cascade, generator):
        children = self.tree.children(i)
        if not children:
            return ok, cascade

        p0 = momenta[i]
        n = p0.shape[0]
        for c in children:
            offshell[c] = self.mass_sampler.sample(self.tree, c, n, generator, p0.dtype)
        m_out = torch.stack([offshell[c] for c in children], dim=1)

        mapping = self.mappings[i]
        r = torch.rand(
            n, decay_dimension(len(children)), generator=generator, dtype=p0.dtype
        )
        (p_decay, decay_ok), weight = mapping.map([r, m_out], condition=[p0])
        for k, c in enumerate(children):
            momenta[c] = p_decay[:, k]

        ok = ok & decay_ok
        cascade = cascade * weight
        for c in children:
            ok, cascade = self._decay(c, momenta, offshell, ok, cascade, generator)
        return ok, cascade
