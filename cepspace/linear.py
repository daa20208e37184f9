""" Linear system for the central transverse momenta.

The central products P_0..P_{K-1} are fixed by the K-1 sampled
"difference momenta" q_i = P_i - P_{i+1} and by transverse momentum
conservation sum_i P_i = -(p1 + p2) = -w. Eliminating the sum gives

    2 P_0 = ( q_0 - w - P_2 - ... - P_{K-1})
    2 P_1 = (-q_0 - w - P_2 - ... - P_{K-1})
    2 P_r = (-q_{r-1} - w - sum_{j != r-1, r} P_j),   r >= 2

i.e. A(K) P = b with the K=4 matrix

    [2 0 1 1
     0 2 1 1
     1 0 2 1
     1 1 0 2]

A(K) is built and inverted once per multiplicity.
"""

import logging
import threading

import numpy as np
import torch
from scipy import linalg

from .base import PhaseSpaceMapping, TensorList
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_LOCK = threading.Lock()
_CACHE: dict[int, tuple[np.ndarray, float]] = {}


def system_matrix(nparticles: int) -> np.ndarray:
    """Matrix A(K): corner 2*I block, then each row is a row of ones
    with a 0 below the diagonal and a 2 on it."""
    if nparticles < 2:
        raise ConfigurationError(
            f"LinearMomentumSolver: central multiplicity {nparticles} < 2 is not supported"
        )
    A = np.ones((nparticles, nparticles))
    A[:2, :2] = [[2.0, 0.0], [0.0, 2.0]]
    for r in range(2, nparticles):
        A[r, r - 1] = 0.0
        A[r, r] = 2.0
    return A


def inverse_system(nparticles: int) -> tuple[np.ndarray, float]:
    """Returns A(K)^-1 and the transverse jacobian |det dP/dq|^2.

    Thread safe: the first caller for a given K builds the entry,
    later calls are plain dictionary lookups.
    """
    entry = _CACHE.get(nparticles)
    if entry is not None:
        return entry
    with _LOCK:
        if nparticles not in _CACHE:
            A_inv = linalg.inv(system_matrix(nparticles))

            # dP_i/dq_k for the K-1 independent momenta, b_0 = q_0 - w, b_j = -q_{j-1} - w
            D = -A_inv[: nparticles - 1, 1:nparticles].copy()
            D[:, 0] += A_inv[: nparticles - 1, 0]
            jac = float(linalg.det(D)) ** 2

            _CACHE[nparticles] = (A_inv, jac)
            logger.debug("Inverted linear system for K=%d, jacobian %.6g", nparticles, jac)
        return _CACHE[nparticles]


def warmup(max_particles: int) -> None:
    """Build all systems up to max_particles, e.g. before spawning workers"""
    for k in range(2, max_particles + 1):
        inverse_system(k)


class LinearMomentumSolver(PhaseSpaceMapping):
    """
    Maps the K-1 difference momenta and the forward transverse
    momenta onto the K central transverse momenta.
    """

    def __init__(self, nparticles: int):
        dims_in = [(nparticles - 1, 2)]
        dims_out = [(nparticles, 2)]
        dims_c = [(2,), (2,)]
        super().__init__(dims_in, dims_out, dims_c)
        self.nparticles = nparticles

        A_inv, jac = inverse_system(nparticles)
        self.register_buffer("A_inv", torch.tensor(A_inv, dtype=torch.get_default_dtype()))
        self.jacobian = jac

    def _map(self, inputs: TensorList, condition: TensorList):
        """Map from difference momenta to central transverse momenta

        Args:
            inputs (TensorList): list with one tensor [q]
                q: difference momenta with shape=(b,K-1,2)
            condition (TensorList): forward transverse momenta [p1t, p2t]
                each with shape=(b,2)

        Returns:
            pt (Tensor): central transverse momenta with shape=(b,K,2)
            det (Tensor): |dP/dq| of the 2(K-1) dimensional map with shape=(b,)
        """
        q = inputs[0]
        w = condition[0] + condition[1]

        # Construct vector b
        b = torch.cat([q[:, :1], -q], dim=1) - w[:, None, :]

        # Apply linear system P = A^{-1} b on both components
        A_inv = self.A_inv.to(dtype=q.dtype, device=q.device)
        pt = torch.einsum("ij,bjd->bid", A_inv, b)

        det = torch.full((q.shape[0],), self.jacobian, dtype=q.dtype, device=q.device)
        return (pt,), det

    def _map_inverse(self, inputs: TensorList, condition=None):
        """Recover difference momenta and w = p1 + p2 from the central momenta"""
        del condition
        pt = inputs[0]
        q = pt[:, :-1] - pt[:, 1:]
        w = -pt.sum(dim=1)
        det = torch.full((pt.shape[0],), 1 / self.jacobian, dtype=pt.dtype, device=pt.device)
        return (q, w), det
