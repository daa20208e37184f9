import unittest

import torch
from torchtestcase import TorchTestCase

torch.set_default_dtype(torch.float64)
from cepspace.decaytree import DecayNode, DecayTree, OffShellMassSampler, Particle
from cepspace.errors import ConfigurationError

PIP = Particle("pi+", 211, 0.13957)
PIM = Particle("pi-", -211, 0.13957)
RHO = Particle("rho0", 113, 0.77526, width=0.1491, spin=1.0)
F2 = Particle("f2", 225, 1.2755, width=0.1867, spin=2.0)


class TestDecayTree(TorchTestCase):
    def test_from_legs(self):
        tree = DecayTree.from_legs([(RHO, [PIP, PIM]), (RHO, [PIP, PIM])])
        self.assertEqual(len(tree), 2)
        self.assertEqual(tree.roots, (0, 3))
        self.assertEqual(tree.children(0), (1, 2))
        self.assertEqual(tree.decaying(), [0, 3])
        self.assertEqual(tree.leaves(), (1, 2, 4, 5))
        self.assertEqual(tree.particle(3).name, "rho0")

    def test_symmetry_factor(self):
        self.assertEqual(DecayTree.from_legs([PIP, PIM]).symmetry_factor(), 1)
        self.assertEqual(DecayTree.from_legs([PIP, PIM, PIP, PIM]).symmetry_factor(), 4)
        self.assertEqual(DecayTree.from_legs([PIP, PIP, PIP]).symmetry_factor(), 6)

    def test_malformed_trees(self):
        # Single daughter
        with self.assertRaises(ConfigurationError):
            DecayTree.from_legs([(RHO, [PIP])])
        # Two parents
        nodes = [DecayNode(RHO, (2, 3)), DecayNode(RHO, (2, 3)), DecayNode(PIP), DecayNode(PIM)]
        with self.assertRaises(ConfigurationError):
            DecayTree(nodes, [0, 1])
        # Unreachable node
        with self.assertRaises(ConfigurationError):
            DecayTree([DecayNode(PIP), DecayNode(PIM), DecayNode(PIP)], [0, 1])
        # Out of range
        with self.assertRaises(ConfigurationError):
            DecayTree([DecayNode(RHO, (1, 5)), DecayNode(PIP)], [0])

    def test_min_mass(self):
        tree = DecayTree.from_legs([(F2, [(RHO, [PIP, PIM]), (RHO, [PIP, PIM])]), PIP])
        self.assertAlmostEqual(tree.min_mass(1, 5.0), 2 * 0.13957)
        self.assertAlmostEqual(tree.min_mass(0, 5.0), 4 * 0.13957)
        self.assertAlmostEqual(tree.min_mass(7, 5.0), 0.13957)


class TestOffShellMassSampler(TorchTestCase):
    def setUp(self):
        self.tree = DecayTree.from_legs([(RHO, [PIP, PIM]), PIP])
        self.sampler = OffShellMassSampler(n_widths=5.0)
        self.generator = torch.Generator().manual_seed(5)

    def test_stable(self):
        m = self.sampler.sample(self.tree, 3, 100, self.generator)
        self.assertEqual(m, torch.full((100,), 0.13957))

    def test_window(self):
        low, high = self.sampler.window(self.tree, 0)
        self.assertAlmostEqual(low, 2 * 0.13957)
        self.assertAlmostEqual(high, 0.77526 + 5 * 0.1491)

        m = self.sampler.sample(self.tree, 0, 100000, self.generator)
        self.assertTrue((m >= low).all())
        self.assertTrue((m <= high).all())
        # Line shape peaks at the pole
        near_pole = ((m - 0.77526).abs() < 0.1491 / 2).double().mean()
        far = ((m - 1.3).abs() < 0.1491 / 2).double().mean()
        self.assertGreater(near_pole.item(), 5 * far.item())

    def test_closed_decay(self):
        heavy = Particle("pi+", 211, 0.13957)
        light = Particle("X", 99, 0.2, width=0.001)
        tree = DecayTree.from_legs([(light, [heavy, heavy]), heavy])
        with self.assertRaises(ConfigurationError):
            self.sampler.window(tree, 0)


if __name__ == "__main__":
    unittest.main()
