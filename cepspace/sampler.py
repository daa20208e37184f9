""" Common part of the skeleton samplers """

import logging
from typing import Optional

import torch
from torch import Tensor

from .base import PhaseSpaceMapping, TensorList
from .cuts import FiducialCuts, GenerationCuts
from .decays import DecayTreeRecursor
from .decaytree import DecayTree, OffShellMassSampler
from .errors import ConfigurationError
from .event import AuxIntegrationData, KinematicEvent, SampledPoint
from .frame import FrameBooster
from .gate import ValidityGate, Veto
from .helper import is_finite, mass
from .sampling import CentralMassSampler

logger = logging.getLogger(__name__)


class SkeletonSampler(PhaseSpaceMapping):
    """
    Base class of the 2 -> N samplers. Holds the run configuration
    (beams, cuts, decay tree) and turns the working frame kinematics
    of a batch into a ``SampledPoint``:

        boost to the lab -> decay tree -> validity gate -> fiducial cuts

    Subclasses implement ``sample(r, generator)``.
    """

    topology = "skeleton"

    def __init__(
        self,
        pbeam: Tensor,
        tree: DecayTree,
        cuts: Optional[GenerationCuts] = None,
        excitation: int = 0,
        fiducial: Optional[FiducialCuts] = None,
        veto: Optional[Veto] = None,
        mass_sampler: Optional[OffShellMassSampler] = None,
        seed: Optional[int] = None,
    ):
        """
        Args:
            pbeam (Tensor): lab frame beam momenta with shape=(2,4)
            tree (DecayTree): decay tree of the central system
            cuts (GenerationCuts, optional): sampling boundaries. Defaults to GenerationCuts().
            excitation (int, optional): number of excited forward legs. Defaults to 0.
            fiducial (FiducialCuts, optional): fiducial cuts. Defaults to None.
            veto (Veto, optional): callable event -> mask with shape=(b,). Defaults to None.
            mass_sampler (OffShellMassSampler, optional): line-shape sampler.
            seed (int, optional): seed of the private generator used for
                offshell masses and decay angles. Defaults to None.
        """
        if len(tree) < 2:
            raise ConfigurationError(
                f"{self.__class__.__name__}: central multiplicity {len(tree)} < 2 is not supported"
            )
        super().__init__(dims_in=[], dims_out=[(3 + len(tree), 4), ()])
        self.tree = tree
        self.nparticles = len(tree)
        self.cuts = cuts or GenerationCuts()
        self.fiducial = fiducial

        self.booster = FrameBooster(pbeam)
        pbeam_cm = self.booster.cm_beams(pbeam)
        self.sqrt_s = self.booster.sqrt_s
        self.s = self.sqrt_s**2
        self.beam_masses = tuple(mass(pbeam).tolist())

        self.central = CentralMassSampler(
            self.nparticles,
            self.cuts,
            self.s,
            self.beam_masses,
            tree=tree,
            mass_sampler=mass_sampler,
            excitation=excitation,
        )
        self.recursor = DecayTreeRecursor(tree, self.central.mass_sampler)
        self.gate = ValidityGate(self.sqrt_s, veto)

        self.generator = torch.Generator()
        if seed is not None:
            self.generator.manual_seed(seed)

        self.dims_in = [(self.dimension,)]
        self.register_buffer("pbeam", pbeam)
        self.register_buffer("pbeam_cm", pbeam_cm)

    @property
    def excitation(self) -> int:
        return self.central.excitation

    @property
    def dimension(self) -> int:
        raise NotImplementedError

    @property
    def volume(self) -> float:
        raise NotImplementedError

    def _log_setup(self):
        logger.info(
            "%s: %s topology, K = %d, excitation = %d, dimension = %d, volume = %.6e",
            self.__class__.__name__,
            self.topology,
            self.nparticles,
            self.excitation,
            self.dimension,
            self.volume,
        )

    def sample(self, r: Tensor, generator: Optional[torch.Generator] = None) -> SampledPoint:
        raise NotImplementedError

    def _map(self, inputs: TensorList, condition=None):
        """Map from random numbers to the lab frame momenta

        Args:
            inputs (TensorList): list with one tensor [r] with shape=(b,dimension)

        Returns:
            pfinal (Tensor): central system, forward legs and first level
                products with shape=(b,3+K,4)
            valid (Tensor): validity mask with shape=(b,)
            det (Tensor): volume * weight * cascade with shape=(b,)
        """
        del condition
        point = self.sample(inputs[0])
        return (point.event.pfinal, point.valid), point.volume * point.weight * point.cascade

    def _finish(
        self,
        pfinal_cm: Tensor,
        offshell: dict,
        branch_ok: Tensor,
        m_legs: Optional[Tensor],
        weight: Tensor,
        cascade: Tensor,
        generator: Optional[torch.Generator],
    ) -> SampledPoint:
        """
        Args:
            pfinal_cm (Tensor): working frame momenta with shape=(b,3+K,4)
            offshell (dict): offshell masses of the first level products
            branch_ok (Tensor): validity of the skeleton construction with shape=(b,)
            m_legs (Tensor, optional): forward leg masses for the energy check
            weight (Tensor): phase-space weight with shape=(b,)
            cascade (Tensor): decay phase-space weights collected so far with shape=(b,)
            generator (torch.Generator, optional): private generator
        """
        (pfinal,), _ = self.booster.map([pfinal_cm])

        momenta = {i: pfinal[:, 3 + k] for k, i in enumerate(self.tree.roots)}
        decay_ok, tree_weight = self.recursor.run(momenta, offshell, generator)
        cascade = cascade * tree_weight

        event = KinematicEvent(
            pbeam=self.pbeam,
            sqrt_s=self.sqrt_s,
            pfinal=pfinal,
            offshell=offshell,
            decays=momenta,
            leaves=self.tree.leaves(),
        )

        m_products = torch.stack([offshell[i] for i in self.tree.roots], dim=1)
        p_x = pfinal_cm[:, 0]
        kinematics_ok, veto_ok = self.gate(
            event,
            branch_ok,
            e_x=p_x[:, 0],
            m_x=mass(p_x),
            m_products=m_products,
            weight=weight,
            m_legs=m_legs,
        )
        kinematics_ok = kinematics_ok & decay_ok & is_finite(cascade)

        if self.fiducial is None:
            fiducial_ok = torch.ones_like(kinematics_ok)
        else:
            fiducial_ok = self.fiducial.passes(event.p_system, event.p_products)

        event.compute_scalars(pfinal_cm, self.pbeam_cm)
        aux = AuxIntegrationData(kinematics_ok, fiducial_ok, veto_ok)
        valid = aux.valid

        logger.debug(
            "%s: %d / %d valid trials", self.__class__.__name__, int(valid.sum()), valid.numel()
        )
        return SampledPoint(
            event=event,
            volume=self.volume,
            weight=torch.where(valid, weight, torch.zeros_like(weight)),
            cascade=torch.where(valid, cascade, torch.zeros_like(cascade)),
            aux=aux,
        )
