import unittest

import torch
from torchtestcase import TorchTestCase

torch.set_default_dtype(torch.float64)
from cepspace.frame import FrameBooster
from cepspace.helper import build_beams, build_symmetric_beams, lsquare

M_P = 0.938272


class TestFrameBooster(TorchTestCase):
    def setUp(self):
        torch.manual_seed(7)
        p3 = 50 * torch.randn(20, 5, 3)
        e = torch.sqrt(1.0 + p3.square().sum(dim=-1, keepdim=True))
        self.p = torch.cat([e, p3], dim=-1)

    def test_symmetric_beams_identity(self):
        booster = FrameBooster(build_symmetric_beams(13000.0, M_P))
        self.assertFalse(booster.active)
        (p_lab,), det = booster.map([self.p])
        self.assertEqual(p_lab, self.p)
        self.assertEqual(det, torch.ones(20))

    def test_round_trip(self):
        booster = FrameBooster(build_beams(7000.0, 4000.0, M_P, M_P))
        self.assertTrue(booster.active)
        (p_lab,), _ = booster.map([self.p])
        (p_back,), _ = booster.map_inverse([p_lab])
        self.assertTrue(torch.allclose(p_back, self.p, rtol=1e-9, atol=1e-8))
        self.assertTrue(torch.allclose(lsquare(p_lab), lsquare(self.p), rtol=1e-6, atol=1e-6))

    def test_cm_beams(self):
        pbeam = build_beams(7000.0, 4000.0, M_P, M_P)
        booster = FrameBooster(pbeam)
        pbeam_cm = booster.cm_beams(pbeam)
        total = pbeam_cm.sum(dim=0)
        self.assertAlmostEqual(total[0].item(), booster.sqrt_s, delta=1e-6)
        self.assertTrue(torch.allclose(total[1:], torch.zeros(3), atol=1e-6))

        # And back into the lab
        (p_lab,), _ = booster.map([pbeam_cm[None]])
        self.assertTrue(torch.allclose(p_lab[0], pbeam, atol=1e-6))


if __name__ == "__main__":
    unittest.main()
