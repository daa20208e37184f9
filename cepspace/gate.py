""" Kinematic validity checks of a batch of trials """

import logging
from typing import Callable, Optional

import torch
from torch import Tensor

from .event import KinematicEvent
from .helper import is_finite

logger = logging.getLogger(__name__)

Veto = Callable[[KinematicEvent], Tensor]


class ValidityGate:
    """
    Sequential checks, a trial is rejected by the first one it fails:

        1. branch sign of the longitudinal solution
        2. energy overflow E_X <= sqrt(s) - (m1 + m2)
        3. central mass threshold M_X >= sum of product masses
        4. energy-momentum conservation within tolerance * sqrt(s)
        5. veto callable (optional)

    Non-finite momenta or weights count as failures of 4. Rejections
    only show up in the returned masks.
    """

    def __init__(self, sqrt_s: float, veto: Optional[Veto] = None, tolerance: float = 1e-6):
        self.sqrt_s = sqrt_s
        self.veto = veto
        self.tolerance = tolerance

    def energy_overflow(self, e_x: Tensor, m_legs: Optional[Tensor] = None) -> Tensor:
        """E_X <= sqrt(s) - (m1 + m2), with shape=(b,)"""
        limit = torch.full_like(e_x, self.sqrt_s)
        if m_legs is not None:
            limit = limit - m_legs.sum(dim=-1)
        return e_x <= limit

    def conservation(self, event: KinematicEvent) -> Tensor:
        """Componentwise EMC of beams vs. legs and central system, shape=(b,)"""
        residual = event.emc_residual()
        return (residual.abs() <= self.tolerance * self.sqrt_s).all(dim=-1)

    def __call__(
        self,
        event: KinematicEvent,
        branch_ok: Tensor,
        e_x: Tensor,
        m_x: Tensor,
        m_products: Tensor,
        weight: Tensor,
        m_legs: Optional[Tensor] = None,
    ) -> tuple[Tensor, Tensor]:
        """
        Args:
            event (KinematicEvent): kinematics of the batch (lab frame)
            branch_ok (Tensor): physical root of the balancer with shape=(b,)
            e_x (Tensor): central system energy (working frame) with shape=(b,)
            m_x (Tensor): central system mass with shape=(b,)
            m_products (Tensor): masses of the first level products with shape=(b,K)
            weight (Tensor): point dependent weight with shape=(b,)
            m_legs (Tensor, optional): forward leg masses with shape=(b,2)

        Returns:
            kinematics_ok (Tensor): checks 1-4 with shape=(b,)
            veto_ok (Tensor): check 5 with shape=(b,)
        """
        checks = [
            ("branch", branch_ok),
            ("energy", self.energy_overflow(e_x, m_legs)),
            # Rounding of the sum at the threshold
            ("threshold", m_x >= m_products.sum(dim=-1) * (1 - 1e-12)),
            ("emc", self.conservation(event) & is_finite(event.pfinal, weight)),
        ]

        ok = torch.ones_like(branch_ok)
        failed = {}
        for name, mask in checks:
            failed[name] = int((ok & ~mask).sum())
            ok = ok & mask

        if self.veto is None:
            veto_ok = torch.ones_like(ok)
        else:
            veto_ok = self.veto(event).to(torch.bool)
            failed["veto"] = int((ok & ~veto_ok).sum())

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Accepted %d / %d, rejections %s", int((ok & veto_ok).sum()), ok.numel(), failed
            )
        return ok, veto_ok
