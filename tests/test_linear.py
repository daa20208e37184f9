import unittest
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import torch
from torchtestcase import TorchTestCase

torch.set_default_dtype(torch.float64)
from cepspace.errors import ConfigurationError
from cepspace.linear import LinearMomentumSolver, inverse_system, system_matrix, warmup


class TestLinearSystem(TorchTestCase):
    def setUp(self):
        torch.manual_seed(42)

    def test_matrix(self):
        expected = np.array(
            [
                [2.0, 0.0, 1.0, 1.0],
                [0.0, 2.0, 1.0, 1.0],
                [1.0, 0.0, 2.0, 1.0],
                [1.0, 1.0, 0.0, 2.0],
            ]
        )
        np.testing.assert_array_equal(system_matrix(4), expected)

    def test_inverse(self):
        A_inv, _ = inverse_system(3)
        expected = np.array(
            [
                [2.0 / 3.0, 0.0, -1.0 / 3.0],
                [1.0 / 6.0, 1.0 / 2.0, -1.0 / 3.0],
                [-1.0 / 3.0, 0.0, 2.0 / 3.0],
            ]
        )
        np.testing.assert_allclose(A_inv, expected, atol=1e-14)

    def test_unsupported_multiplicity(self):
        with self.assertRaises(ConfigurationError):
            system_matrix(1)
        with self.assertRaises(ConfigurationError):
            LinearMomentumSolver(1)

    def test_shape_check(self):
        solver = LinearMomentumSolver(3)
        solver.debug = True
        p1t, p2t = torch.randn(4, 2), torch.randn(4, 2)
        with self.assertRaises(ConfigurationError):
            solver.map([torch.randn(4, 3, 2)], condition=[p1t, p2t])
        with self.assertRaises(ConfigurationError):
            solver.map([torch.randn(4, 2, 2)])
        with self.assertRaises(ConfigurationError):
            solver.map([torch.randn(5, 2, 2)], condition=[p1t, p2t])
        (pt,), _ = solver.map([torch.randn(4, 2, 2)], condition=[p1t, p2t])
        self.assertEqual(pt.shape, (4, 3, 2))

    def test_zero_sum_and_differences(self):
        n = 1000
        for K in range(2, 13):
            solver = LinearMomentumSolver(K)
            q = 10 * torch.randn(n, K - 1, 2)
            p1t = torch.randn(n, 2)
            p2t = torch.randn(n, 2)
            (pt,), det = solver.map([q], condition=[p1t, p2t])

            self.assertEqual(pt.shape, (n, K, 2))
            total = pt.sum(dim=1) + p1t + p2t
            self.assertTrue(torch.allclose(total, torch.zeros_like(total), atol=1e-10))
            self.assertTrue(torch.allclose(pt[:, :-1] - pt[:, 1:], q, atol=1e-10))
            self.assertEqual(det.shape, (n,))

    def test_transverse_jacobian(self):
        for K in range(2, 9):
            _, jac = inverse_system(K)
            self.assertAlmostEqual(jac, 1.0 / K**2, places=12)

    def test_inverse_map(self):
        K = 5
        solver = LinearMomentumSolver(K)
        q = torch.randn(10, K - 1, 2)
        p1t, p2t = torch.randn(10, 2), torch.randn(10, 2)
        (pt,), det = solver.map([q], condition=[p1t, p2t])
        (q_back, w), det_inv = solver.map_inverse([pt])
        self.assertTrue(torch.allclose(q_back, q, atol=1e-12))
        self.assertTrue(torch.allclose(w, p1t + p2t, atol=1e-12))
        self.assertTrue(torch.allclose(det * det_inv, torch.ones(10)))

    def test_concurrent_setup(self):
        K = 17
        with ThreadPoolExecutor(max_workers=8) as pool:
            entries = list(pool.map(inverse_system, [K] * 32))
        self.assertTrue(all(e is entries[0] for e in entries))

    def test_warmup(self):
        warmup(6)
        for K in range(2, 7):
            self.assertIs(inverse_system(K), inverse_system(K))


if __name__ == "__main__":
    unittest.main()
