import unittest
from math import log, pi

import torch
from torchtestcase import TorchTestCase

torch.set_default_dtype(torch.float64)
from cepspace.continuum import ContinuumSampler
from cepspace.cuts import FiducialCuts, GenerationCuts
from cepspace.decaytree import DecayTree, Particle
from cepspace.errors import ConfigurationError
from cepspace.helper import build_beams, build_symmetric_beams, mass, rapidity

SQRT_S = 13000.0
M_P = 0.938272
M_PI = 0.13957
PHOTON = Particle("gamma", 22, 0.0)
PIP = Particle("pi+", 211, M_PI)
PIM = Particle("pi-", -211, M_PI)
RHO = Particle("rho0", 113, 0.77526, width=0.1491, spin=1.0)


class TestContinuumSampler(TorchTestCase):
    def setUp(self):
        torch.manual_seed(2024)
        self.pbeam = build_symmetric_beams(SQRT_S, M_P)
        self.massless = DecayTree.from_legs([PHOTON, PHOTON])
        self.pions = DecayTree.from_legs([PIP, PIM, PIP, PIM])

    def assertConserved(self, point, beamsum):
        valid = point.valid
        pfinal = point.event.pfinal[valid]
        residual = beamsum - pfinal[:, :3].sum(dim=1)
        self.assertTrue((residual.abs() <= 1e-6 * SQRT_S).all())
        # Slot 0 is the sum of the central products
        self.assertTrue(torch.allclose(pfinal[:, 0], pfinal[:, 3:].sum(dim=1), atol=1e-8))

    def test_dimension(self):
        for K in range(2, 7):
            tree = DecayTree.from_legs([PIP] * K)
            for excitation in (0, 1, 2):
                sampler = ContinuumSampler(self.pbeam, tree, excitation=excitation)
                self.assertEqual(sampler.dimension, 3 * (K + 2) - 4 + excitation)

    def test_wrong_width(self):
        sampler = ContinuumSampler(self.pbeam, self.massless)
        with self.assertRaises(ConfigurationError):
            sampler.sample(torch.rand(10, sampler.dimension + 1))

    def test_unsupported_multiplicity(self):
        with self.assertRaises(ConfigurationError):
            ContinuumSampler(self.pbeam, DecayTree.from_legs([PIP]))

    def test_volume(self):
        cuts = GenerationCuts()
        sampler = ContinuumSampler(self.pbeam, self.massless, cuts=cuts)
        log_pt = log(2.5) - log(1e-6)
        expected = log_pt**2 * (2 * pi) ** 2 * 10.0 * (2 * pi) * 4.0**2
        self.assertAlmostEqual(sampler.volume / expected, 1.0, places=12)

    def test_all_half(self):
        sampler = ContinuumSampler(self.pbeam, self.massless, seed=1)
        r = torch.full((1, sampler.dimension), 0.5)
        point = sampler.sample(r)

        self.assertTrue(point.valid.item())
        self.assertConserved(point, self.pbeam.sum(dim=0))
        y = rapidity(point.event.p_products)
        self.assertTrue(((y >= -2) & (y <= 2)).all())
        self.assertTrue(torch.allclose(y, torch.zeros(1, 2), atol=1e-10))
        self.assertTrue(point.weight.item() > 0)

    def test_conservation_and_mass_shell(self):
        sampler = ContinuumSampler(self.pbeam, self.pions, seed=2)
        point = sampler.sample(torch.rand(5000, sampler.dimension))
        valid = point.valid
        self.assertGreater(valid.double().mean().item(), 0.5)
        self.assertConserved(point, self.pbeam.sum(dim=0))

        p_products = point.event.p_products[valid]
        self.assertTrue(torch.allclose(mass(p_products), torch.full_like(p_products[..., 0], M_PI), atol=1e-6))
        p_forward = point.event.p_forward[valid]
        self.assertTrue(torch.allclose(mass(p_forward), torch.full_like(p_forward[..., 0], M_P), atol=1e-5))

        # Forward legs keep their hemispheres
        self.assertTrue((p_forward[:, 0, 3] > 0).all())
        self.assertTrue((p_forward[:, 1, 3] < 0).all())

        # Invalid trials never carry weight
        self.assertTrue(torch.isfinite(point.weight).all())
        self.assertEqual(point.weight[~valid], torch.zeros(int((~valid).sum())))

    def test_scalars(self):
        sampler = ContinuumSampler(self.pbeam, self.massless, seed=3)
        point = sampler.sample(torch.rand(1000, sampler.dimension))
        scalars = point.event.scalars
        valid = point.valid
        self.assertTrue((scalars.t1[valid] <= 0).all())
        self.assertTrue((scalars.t2[valid] <= 0).all())
        self.assertTrue((scalars.xi1[valid] > 0).all())
        self.assertTrue(torch.allclose(scalars.s, torch.full((1000,), SQRT_S**2)))
        self.assertTrue(torch.allclose(scalars.m2, mass(point.event.p_system) ** 2))

    def test_decay_tree(self):
        tree = DecayTree.from_legs([(RHO, [PIP, PIM]), (RHO, [PIP, PIM])])
        sampler = ContinuumSampler(self.pbeam, tree, seed=4)
        point = sampler.sample(torch.rand(2000, sampler.dimension))
        valid = point.valid
        self.assertGreater(valid.double().mean().item(), 0.5)
        self.assertConserved(point, self.pbeam.sum(dim=0))

        final = point.event.final_state()[valid]
        self.assertEqual(final.shape[1:], (6, 4))
        # Pions carry the full central system
        self.assertTrue(
            torch.allclose(final[:, 2:].sum(dim=1), point.event.p_system[valid], atol=1e-8)
        )
        self.assertTrue(torch.allclose(mass(final[:, 2:]), torch.full_like(final[:, 2:, 0], M_PI), atol=1e-6))

        # rho masses are offshell, but the same for the momentum and the record
        for i in tree.roots:
            m = point.event.offshell[i][valid]
            self.assertTrue(torch.allclose(mass(point.event.decays[i][valid]), m, atol=1e-6))
        self.assertTrue((point.cascade[valid] > 0).all())

    def test_excitation(self):
        sampler = ContinuumSampler(self.pbeam, self.pions, excitation=2, seed=5)
        cuts = sampler.central.cuts
        point = sampler.sample(torch.rand(2000, sampler.dimension))
        valid = point.valid
        self.assertConserved(point, self.pbeam.sum(dim=0))

        m_forward = mass(point.event.p_forward[valid])
        self.assertTrue((m_forward >= (cuts.xi_min * SQRT_S**2) ** 0.5 * (1 - 1e-6)).all())
        self.assertTrue((m_forward <= (cuts.xi_max * SQRT_S**2) ** 0.5 * (1 + 1e-6)).all())

    def test_asymmetric_beams(self):
        pbeam = build_beams(7000.0, 4000.0, M_P, M_P)
        sampler = ContinuumSampler(pbeam, self.pions, seed=6)
        point = sampler.sample(torch.rand(2000, sampler.dimension))
        self.assertGreater(point.valid.double().mean().item(), 0.5)
        self.assertConserved(point, pbeam.sum(dim=0))

    def test_veto_and_fiducial(self):
        sampler = ContinuumSampler(
            self.pbeam, self.pions, veto=lambda event: torch.zeros(event.pfinal.shape[0], dtype=torch.bool)
        )
        point = sampler.sample(torch.rand(100, sampler.dimension))
        self.assertFalse(point.aux.veto_ok.any())
        self.assertEqual(point.weight, torch.zeros(100))

        fiducial = FiducialCuts(eta_min=-1.0, eta_max=1.0)
        sampler = ContinuumSampler(self.pbeam, self.pions, fiducial=fiducial, seed=7)
        point = sampler.sample(torch.rand(1000, sampler.dimension))
        self.assertTrue(point.aux.fiducial_ok.any())
        self.assertFalse(point.aux.fiducial_ok.all())
        self.assertEqual(point.valid, point.aux.kinematics_ok & point.aux.fiducial_ok)

    def test_module_interface(self):
        sampler = ContinuumSampler(self.pbeam, self.massless, seed=8)
        (pfinal, valid), det = sampler.map([torch.rand(50, sampler.dimension)])
        self.assertEqual(pfinal.shape, (50, 5, 4))
        self.assertEqual(valid.shape, (50,))
        self.assertTrue((det[valid] > 0).all())


if __name__ == "__main__":
    unittest.main()
