import unittest

import numpy as np
import torch
import vegas
from torchtestcase import TorchTestCase

torch.set_default_dtype(torch.float64)
from cepspace.continuum import ContinuumSampler
from cepspace.decaytree import DecayTree, Particle
from cepspace.helper import GEV2BARN, build_symmetric_beams, kaellen
from cepspace.integrand import EventWeight, VegasIntegrand

SQRT_S = 13000.0
M_P = 0.938272
PHOTON = Particle("gamma", 22, 0.0)


class TestEventWeight(TorchTestCase):
    def setUp(self):
        torch.manual_seed(31)
        self.pbeam = build_symmetric_beams(SQRT_S, M_P)
        self.tree = DecayTree.from_legs([PHOTON, PHOTON])
        self.sampler = ContinuumSampler(self.pbeam, self.tree, seed=1)

    def test_flux(self):
        weight = EventWeight(self.sampler)
        s = torch.tensor(SQRT_S**2)
        m2 = torch.tensor(M_P**2)
        expected = 2 * torch.sqrt(kaellen(s, m2, m2)).item()
        self.assertAlmostEqual(weight.flux / expected, 1.0, places=9)
        self.assertEqual(weight.symmetry_factor, 2)

    def test_assembly(self):
        weight = EventWeight(self.sampler, flux=1.0)
        r = torch.rand(500, self.sampler.dimension)
        W, point = weight(r, generator=torch.Generator().manual_seed(3))

        expected = point.cascade / 2 * point.weight * point.volume * GEV2BARN
        self.assertTrue(torch.allclose(W, expected))
        self.assertEqual(W[~point.valid], torch.zeros(int((~point.valid).sum())))

    def test_amplitude(self):
        r = torch.rand(100, self.sampler.dimension)
        W1, _ = EventWeight(self.sampler)(r, generator=torch.Generator().manual_seed(4))
        W2, _ = EventWeight(
            self.sampler, amplitude=lambda event: torch.full((event.pfinal.shape[0],), 2.0)
        )(r, generator=torch.Generator().manual_seed(4))
        self.assertTrue(torch.allclose(W2, 2 * W1))

    def test_non_finite_amplitude(self):
        def amplitude(event):
            amp2 = torch.ones(event.pfinal.shape[0])
            amp2[0] = float("nan")
            return amp2

        W, _ = EventWeight(self.sampler, amplitude=amplitude)(torch.rand(10, self.sampler.dimension))
        self.assertEqual(W[0], torch.tensor(0.0))
        self.assertTrue(torch.isfinite(W).all())


class TestVegasIntegrand(TorchTestCase):
    def setUp(self):
        torch.manual_seed(32)
        pbeam = build_symmetric_beams(SQRT_S, M_P)
        tree = DecayTree.from_legs([PHOTON, PHOTON])
        self.sampler = ContinuumSampler(pbeam, tree, seed=2)
        self.integrand = VegasIntegrand(EventWeight(self.sampler))

    def test_call(self):
        self.assertEqual(len(self.integrand.domain), self.sampler.dimension)
        x = np.random.default_rng(0).random((200, self.sampler.dimension))
        values = self.integrand(x)
        self.assertEqual(values.shape, (200,))
        self.assertTrue(np.isfinite(values).all())
        self.assertTrue((values >= 0).all())

    def test_integration_and_events(self):
        integ = vegas.Integrator(self.integrand.domain)
        result = integ(self.integrand, nitn=3, neval=2000)
        self.assertGreater(result.mean, 0.0)

        W, point = next(self.integrand.events(integ))
        self.assertIsNotNone(point.aux.vegas_weight)
        self.assertEqual(point.aux.vegas_weight.shape, W.shape)
        self.assertTrue((point.aux.vegas_weight > 0).all())


if __name__ == "__main__":
    unittest.main()
