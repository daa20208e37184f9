""" Longitudinal momentum balance of the two forward legs """

import torch
from torch import sqrt

from .base import PhaseSpaceMapping, TensorList
from .helper import kaellen


class LongitudinalBalancer(PhaseSpaceMapping):
    """
    Solves energy and longitudinal momentum conservation for the
    forward legs once the central system is fixed:

        E1 + E2 = sqrt(s) - E_X =: A
        p1z + p2z = -P_Xz       =: B

    With D = A^2 - B^2 (the squared invariant mass left for the legs)
    and mt_i^2 = m_i^2 + pt_i^2 this reduces to the quadratic

        4 D p1z^2 - 4 B C p1z + 4 A^2 mt1^2 - C^2 = 0,  C = D + mt1^2 - mt2^2

    with discriminant A^2 lambda(D, mt1^2, mt2^2). The root with leg 1
    in the +z and leg 2 in the -z hemisphere is the physical one.
    """

    def __init__(self, sqrt_s: float):
        dims_in = [(2,), (2,)]
        dims_out = [(2,), (2,), ()]
        dims_c = [(), ()]
        super().__init__(dims_in, dims_out, dims_c)
        self.sqrt_s = sqrt_s

    def _map(self, inputs: TensorList, condition: TensorList):
        """Solve for the forward longitudinal momenta

        Args:
            inputs (TensorList): [m, pt]
                m: forward leg masses with shape=(b,2)
                pt: forward leg transverse momenta (magnitudes) with shape=(b,2)
            condition (TensorList): [pz_x, e_x]
                pz_x: longitudinal momentum of the central system with shape=(b,)
                e_x: energy of the central system with shape=(b,)

        Returns:
            pz (Tensor): (p1z, p2z) with shape=(b,2)
            energy (Tensor): (E1, E2) with shape=(b,2)
            det (Tensor): jacobian 1/|p1z/E1 - p2z/E2| with shape=(b,),
                this is the factor from integrating out the energy delta function
            ok (Tensor): physical solution found with shape=(b,)
        """
        m, pt = inputs
        pz_x, e_x = condition

        mt1_2 = m[:, 0] ** 2 + pt[:, 0] ** 2
        mt2_2 = m[:, 1] ** 2 + pt[:, 1] ** 2

        A = self.sqrt_s - e_x
        B = -pz_x
        D = A**2 - B**2
        C = D + mt1_2 - mt2_2
        lam = kaellen(D, mt1_2, mt2_2)

        # Unreachable points get NaN here and are masked below
        p1z = (B * C + A * sqrt(lam)) / (2 * D)
        p2z = B - p1z
        E1 = sqrt(mt1_2 + p1z**2)
        E2 = sqrt(mt2_2 + p2z**2)

        ok = (A > 0) & (D > 0) & (lam >= 0)
        ok &= torch.isfinite(p1z) & torch.isfinite(p2z)

        # Squaring admits the spurious root with E1 + E2 != A
        residual = (E1 + E2 - A).abs()
        ok &= residual <= 1e-9 * self.sqrt_s

        # Enforce scattering direction +p -> +p, -p -> -p
        ok &= (p1z >= 0) & (p2z <= 0)

        J = 1 / (p1z / E1 - p2z / E2).abs()
        ok &= torch.isfinite(J)

        pz = torch.stack([p1z, p2z], dim=1)
        energy = torch.stack([E1, E2], dim=1)
        return (pz, energy, ok), torch.where(ok, J, torch.zeros_like(J))
