""" Monte Carlo integrand built on top of the samplers

The event weight of a trial is

    W = cascade / S * weight * volume * |M|^2 * GeV2barn / flux

with the identical particle factor S of the first level products.
Integrating W over the unit hypercube gives the cross section in barn.
"""

import logging
from typing import Callable, Iterator, Optional

import numpy as np
import torch
import vegas
from torch import Tensor

from .event import KinematicEvent, SampledPoint
from .helper import GEV2BARN, lsquare, moller_flux
from .sampler import SkeletonSampler

logger = logging.getLogger(__name__)

Amplitude = Callable[[KinematicEvent], Tensor]


class EventWeight:
    """
    Args:
        sampler (SkeletonSampler): phase-space sampler of the process
        amplitude (Amplitude, optional): squared matrix element as a function
            of the event with shape=(b,). Defaults to |M|^2 = 1.
        flux (float, optional): flux factor in GeV^2, defaults to the
            Moller flux of the beams.
    """

    def __init__(
        self,
        sampler: SkeletonSampler,
        amplitude: Optional[Amplitude] = None,
        flux: Optional[float] = None,
    ):
        self.sampler = sampler
        self.amplitude = amplitude
        self.symmetry_factor = sampler.tree.symmetry_factor()
        if flux is None:
            pbeam = sampler.pbeam
            flux = moller_flux(
                torch.tensor(sampler.s, dtype=pbeam.dtype),
                lsquare(pbeam[0]),
                lsquare(pbeam[1]),
            ).item()
        self.flux = flux
        logger.info(
            "EventWeight: S = %d, flux = %.6e GeV^2", self.symmetry_factor, self.flux
        )

    def __call__(
        self, r: Tensor, generator: Optional[torch.Generator] = None
    ) -> tuple[Tensor, SampledPoint]:
        """
        Args:
            r (Tensor): random numbers with shape=(b, dimension)
            generator (torch.Generator, optional): private generator of the worker

        Returns:
            W (Tensor): event weights in barn with shape=(b,), zero for invalid trials
            point (SampledPoint): the sampled kinematics
        """
        point = self.sampler.sample(r, generator)
        if self.amplitude is None:
            amp2 = torch.ones_like(point.weight)
        else:
            amp2 = self.amplitude(point.event)

        W = (
            point.cascade
            / self.symmetry_factor
            * point.weight
            * point.volume
            * amp2
            * GEV2BARN
            / self.flux
        )
        ok = point.valid & torch.isfinite(W)
        return torch.where(ok, W, torch.zeros_like(W)), point


class VegasIntegrand(vegas.BatchIntegrand):
    """
    Batch integrand for ``vegas.Integrator``, e.g.

        integ = vegas.Integrator(integrand.domain)
        result = integ(integrand, nitn=10, neval=10000)
    """

    def __init__(self, weight: EventWeight, dtype=torch.float64):
        self.weight = weight
        self.dtype = dtype

    @property
    def domain(self) -> list[list[float]]:
        return [[0.0, 1.0]] * self.weight.sampler.dimension

    def __call__(self, x: np.ndarray) -> np.ndarray:
        r = torch.as_tensor(np.asarray(x), dtype=self.dtype)
        W, _ = self.weight(r)
        return W.numpy()

    def events(self, integrator: vegas.Integrator) -> Iterator[tuple[Tensor, SampledPoint]]:
        """Weighted events from one pass of an adapted integrator

        Yields:
            W (Tensor): event weights with shape=(b,)
            point (SampledPoint): kinematics, aux.vegas_weight holds the
                importance sampling weight of vegas
        """
        for x, wgt in integrator.random_batch():
            r = torch.as_tensor(np.asarray(x), dtype=self.dtype)
            W, point = self.weight(r)
            point.aux.vegas_weight = torch.as_tensor(np.asarray(wgt), dtype=self.dtype)
            logger.debug("vegas batch of %d, acceptance %.3f", r.shape[0], point.aux.acceptance())
            yield W, point
