""" Kinematic helper functions needed for the phase-space samplers """

import torch
from torch import Tensor, cos, sin, cosh, sinh, sqrt, log, clip
from math import factorial, pi

ZERO_EPS = 1e-6
GEV2BARN = 0.389379e-3


def kaellen(a: Tensor, b: Tensor, c: Tensor) -> Tensor:
    """Definition of the standard kaellen function [1]

    [1] https://en.wikipedia.org/wiki/Källén_function

    Args:
        a (Tensor): input 1
        b (Tensor): input 2
        c (Tensor): input 3

    Returns:
        Tensor: Kaellen function
    """
    return a**2 + b**2 + c**2 - 2 * a * b - 2 * b * c - 2 * c * a


def two_particle_density(s: Tensor, p1_2: Tensor, p2_2: Tensor) -> Tensor:
    """Calculates the isotropic two-body phase-space density
    including the full solid angle, i.e. (C.8) * (4PI) in [1]

    [1] https://arxiv.org/abs/hep-ph/0008033

    Args:
        s (Tensor): squared mass of the decaying system with shape=(b,)
        p1_2 (Tensor): Mass/virtuality of outgoing particle 1 with shape=(b,)
        p2_2 (Tensor): Mass/virtuality of outgoing particle 2 with shape=(b,)

    Returns:
        g (Tensor): returns the density with shape=(b,)
    """
    # No overall (2*pi)^(-2) here!
    g2 = sqrt(clip(kaellen(s, p1_2, p2_2), min=0.0)) / (8 * s)
    return g2 * 4 * pi


def massless_phase_space(n: int, s):
    """Closed form volume of the massless n-body phase space [1],
    including the (2pi)^(4-3n) normalization

    [1] Rambo [Comput. Phys. Commun. 40 (1986) 359-373]

    Args:
        n (int): number of massless particles, n >= 2
        s (Tensor or float): squared mass of the decaying system

    Returns:
        Phi_n with the shape of s
    """
    return (
        (pi / 2) ** (n - 1)
        * s ** (n - 2)
        / (factorial(n - 1) * factorial(n - 2))
        / (2 * pi) ** (3 * n - 4)
    )


def rotate_zy(p: Tensor, phi: Tensor, costheta: Tensor) -> Tensor:
    """Performs rotation around y- and z-axis:

        p -> p' = R_z(phi).R_y(theta).p

    For a 3D vector v = (0, 0, |v|)^T this results in the general spherical
    coordinate vector

        v -> v' = (  |v|*sin(theta)*cos(phi)  )
                  (  |v|*sin(theta)*sin(phi)  )
                  (  |v|*cos(theta)           )

    Args:
        p (Tensor): 4-momentum to rotate with shape=(b,...,4)
        phi (Tensor): rotation angle phi shape=(b,...)
        costheta (torch.tensor): cosine of rotation angle theta shape=(b,...)

    Returns:
        p' (Tensor): Rotated vector
    """
    sintheta = sqrt(clip(1 - costheta**2, min=0.0))

    # Define the rotation
    q0 = p[..., 0]
    q1 = (
        p[..., 1] * costheta * cos(phi)
        + p[..., 3] * sintheta * cos(phi)
        - p[..., 2] * sin(phi)
    )
    q2 = (
        p[..., 1] * costheta * sin(phi)
        + p[..., 3] * sintheta * sin(phi)
        + p[..., 2] * cos(phi)
    )
    q3 = p[..., 3] * costheta - p[..., 1] * sintheta

    return torch.stack((q0, q1, q2, q3), dim=-1)


def lsquare(a: Tensor) -> Tensor:
    """Gives the lorentz invariant a^2 using
    the Mikowski metric (1.0, -1.0, -1.0, -1.0)

    Args:
        a (Tensor): 4-vector with shape shape=(b,...,4)

    Returns:
        Tensor: Lorentzscalar with shape=(b,...)
    """
    a2 = a.square()
    return a2[..., 0] - a2[..., 1] - a2[..., 2] - a2[..., 3]


def edot(a: Tensor, b: Tensor) -> Tensor:
    """Gives the euclidean inner product ab using
    the Euclidean metric

    Args:
        a (Tensor): vector with shape=(b,...,d)
        b (Tensor): vector with shape=(b,...,d)

    Returns:
        Tensor: scalar with shape=(b,...)
    """
    return torch.einsum("...d,...d->...", a, b)


def mass(a: Tensor) -> Tensor:
    """Gives the mass of a particle

    Args:
        a (Tensor): 4-vector with shape shape=(b,...,4)

    Returns:
        Tensor: mass with shape=(b,...)
    """
    return sqrt(clip(lsquare(a), min=0))


def pT2(p: Tensor) -> Tensor:
    """Gives the squared pT of a particle

    Args:
        p (Tensor): momentum 4-vector with shape shape=(b,...,4)

    Returns:
        Tensor: squared pT with shape=(b,...)
    """
    return p[..., 1] ** 2 + p[..., 2] ** 2


def pT(p: Tensor) -> Tensor:
    """Gives the pT of a particle

    Args:
        p (Tensor): momentum 4-vector with shape shape=(b,...,4)

    Returns:
        Tensor: pT with shape=(b,...)
    """
    return sqrt(pT2(p))


def pmag(p: Tensor) -> Tensor:
    """Gives the absolute three-momentum |p_vec|"""
    return sqrt(edot(p[..., 1:], p[..., 1:]))


def rapidity(p: Tensor) -> Tensor:
    """Gives the rapidity of a particle

    Args:
        p (Tensor): momentum 4-vector with shape shape=(b,...,4)

    Returns:
        Tensor: rapidity with shape=(b,...)
    """
    Es = p[..., 0]
    Pz = p[..., 3]

    y = 0.5 * log((Es + Pz) / (Es - Pz))
    return torch.where(Es == 0, 99.0, y)


def pseudorapidity(p: Tensor) -> Tensor:
    """Gives the pseudorapidity of a particle"""
    pm = pmag(p)
    Pz = p[..., 3]
    eta = 0.5 * log((pm + Pz) / (pm - Pz))
    return torch.where(pm == 0, 99.0, eta)


def boost(k: Tensor, p_boost: Tensor, inverse: bool = False) -> Tensor:
    """
    Boost k into the frame of p_boost in argument.
    This means that the following command, for any vector k=(E, px, py, pz)
    gives:

        k  -> k' = boost(k, k, inverse=True) = (M,0,0,0)
        k' -> k  = boost(k', k) = (E, px, py, pz)

    Args:
        k (Tensor): input vector with shape=(b,n,4)/(b,4)
        p_boost (Tensor): boosting vector with shape=(b,1,4)/(b,4)
        inverse (bool): if boost is performed inverse or forward

    Returns:
        k' (Tensor): boosted vector with shape=(b,n,4)/(b,4)
    """
    # Change sign if inverse boost is performed
    sign = -1.0 if inverse else 1.0

    # Perform the boost
    # This is in fact a numerical more stable implementation then often used
    rsq = mass(p_boost)
    k0 = (k[..., 0] * p_boost[..., 0] + sign * edot(k[..., 1:], p_boost[..., 1:])) / rsq
    c1 = (k[..., 0] + k0) / (rsq + p_boost[..., 0])
    k1 = k[..., 1] + sign * c1 * p_boost[..., 1]
    k2 = k[..., 2] + sign * c1 * p_boost[..., 2]
    k3 = k[..., 3] + sign * c1 * p_boost[..., 3]

    return torch.stack((k0, k1, k2, k3), dim=-1)


def transverse_to_fourvector(pt: Tensor, m: Tensor, y: Tensor) -> Tensor:
    """Builds on-shell 4-momenta from transverse momenta, mass and rapidity

    Args:
        pt (Tensor): transverse 2-vectors with shape=(b,...,2)
        m (Tensor): masses with shape=(b,...)
        y (Tensor): rapidities with shape=(b,...)

    Returns:
        p (Tensor): 4-momenta with shape=(b,...,4)
    """
    mt = sqrt(m**2 + edot(pt, pt))
    return torch.stack(
        (mt * cosh(y), pt[..., 0], pt[..., 1], mt * sinh(y)), dim=-1
    )


def polar_to_vec2(r: Tensor, angle: Tensor) -> Tensor:
    """Transverse 2-vector from magnitude and azimuth with shape=(b,...,2)"""
    return torch.stack((r * cos(angle), r * sin(angle)), dim=-1)


def build_beams(
    e1: float, e2: float, m1: float, m2: float, dtype=None
) -> Tensor:
    """Build beam momenta, beam 1 along +z and beam 2 along -z

    Args:
        e1 (float): energy of beam 1
        e2 (float): energy of beam 2
        m1 (float): mass of beam 1
        m2 (float): mass of beam 2

    Returns:
        p_in: Beam momenta, shape=(2,4)
    """
    dtype = dtype or torch.get_default_dtype()
    pz1 = (e1**2 - m1**2) ** 0.5
    pz2 = (e2**2 - m2**2) ** 0.5
    return torch.tensor(
        [[e1, 0.0, 0.0, pz1], [e2, 0.0, 0.0, -pz2]], dtype=dtype
    )


def build_symmetric_beams(sqrt_s: float, m: float, dtype=None) -> Tensor:
    """Beams of equal species and energy for a given CM energy, shape=(2,4)"""
    return build_beams(sqrt_s / 2, sqrt_s / 2, m, m, dtype=dtype)


def moller_flux(s: Tensor, m1_2: Tensor, m2_2: Tensor) -> Tensor:
    """Moller flux factor 4 sqrt((p1.p2)^2 - m1^2 m2^2) = 2 sqrt(lambda)"""
    return 2 * sqrt(kaellen(s, m1_2, m2_2))


def is_finite(*tensors: Tensor) -> Tensor:
    """Elementwise finiteness over the batch dimension of all inputs"""
    mask = None
    for t in tensors:
        ok = torch.isfinite(t)
        while ok.dim() > 1:
            ok = ok.all(dim=-1)
        mask = ok if mask is None else mask & ok
    return mask
