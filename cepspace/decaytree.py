""" Decay tree of the central system and offshell mass sampling.

The tree is an arena: a flat list of nodes which refer to their
daughters by index. Its topology is fixed for the run, per-trial
offshell masses are kept outside of the tree.
"""

from collections import Counter
from dataclasses import dataclass
from math import atan, factorial
from typing import Optional, Sequence, Union

import torch
from torch import Tensor, sqrt, tan

from .errors import ConfigurationError


@dataclass(frozen=True)
class Particle:
    """Particle record, masses and widths in GeV, spin in units of hbar"""

    name: str
    pdg: int
    mass: float
    width: float = 0.0
    spin: float = 0.0

    @property
    def stable(self) -> bool:
        return self.width <= 0.0


@dataclass(frozen=True)
class DecayNode:
    particle: Particle
    children: tuple[int, ...] = ()


Leg = Union[Particle, tuple]


class DecayTree:
    """
    Read-only decay tree. ``roots`` are the first level central
    products, every other node is reachable from exactly one parent.
    """

    def __init__(self, nodes: Sequence[DecayNode], roots: Sequence[int]):
        self.nodes = tuple(nodes)
        self.roots = tuple(roots)
        self._check()

    @classmethod
    def from_legs(cls, legs: Sequence[Leg]) -> "DecayTree":
        """Build from nested legs, a leg is either a Particle or a
        tuple (Particle, [daughter legs])

        Example:
            DecayTree.from_legs([(rho, [pip, pim]), (rho, [pip, pim])])
        """
        nodes = []

        def add(leg):
            if isinstance(leg, Particle):
                nodes.append(DecayNode(leg))
                return len(nodes) - 1
            particle, daughters = leg
            index = len(nodes)
            nodes.append(None)
            children = tuple(add(d) for d in daughters)
            nodes[index] = DecayNode(particle, children)
            return index

        roots = [add(leg) for leg in legs]
        return cls(nodes, roots)

    def _check(self):
        seen = set()

        def visit(i):
            if i < 0 or i >= len(self.nodes):
                raise ConfigurationError(f"DecayTree: node index {i} out of range")
            if i in seen:
                raise ConfigurationError(f"DecayTree: node {i} has more than one parent")
            seen.add(i)
            node = self.nodes[i]
            if len(node.children) == 1:
                raise ConfigurationError(
                    f"DecayTree: {node.particle.name} has a single daughter"
                )
            for c in node.children:
                visit(c)

        for r in self.roots:
            visit(r)
        if len(seen) != len(self.nodes):
            raise ConfigurationError("DecayTree: unreachable nodes in the arena")

    def __len__(self):
        return len(self.roots)

    def particle(self, i: int) -> Particle:
        return self.nodes[i].particle

    def children(self, i: int) -> tuple[int, ...]:
        return self.nodes[i].children

    def decaying(self) -> list[int]:
        """Indices of all nodes with daughters in depth-first order"""
        order = []

        def visit(i):
            if self.nodes[i].children:
                order.append(i)
            for c in self.nodes[i].children:
                visit(c)

        for r in self.roots:
            visit(r)
        return order

    def leaves(self) -> tuple[int, ...]:
        """Indices of the stable final state nodes"""
        return tuple(i for i, node in enumerate(self.nodes) if not node.children)

    def min_mass(self, i: int, n_widths: float) -> float:
        """Smallest mass the node can take, including its decay threshold"""
        node = self.nodes[i]
        threshold = sum(self.min_mass(c, n_widths) for c in node.children)
        p = node.particle
        if p.stable:
            return p.mass
        return max(threshold, p.mass - n_widths * p.width, 0.0)

    def symmetry_factor(self) -> int:
        """Identical particle factor for the first level products"""
        counts = Counter(self.particle(r).pdg for r in self.roots)
        s = 1
        for n in counts.values():
            s *= factorial(n)
        return s


class OffShellMassSampler:
    """
    Samples offshell masses from a relativistic Breit-Wigner in m^2,
    truncated to [m_low, M + n_widths * width]. Uses the same tan-mapping
    as the s-channel propagator mapping, so no rejection loop is needed.
    """

    def __init__(self, n_widths: float = 5.0):
        self.n_widths = n_widths

    def window(self, tree: DecayTree, i: int) -> tuple[float, float]:
        p = tree.particle(i)
        if p.stable:
            return p.mass, p.mass
        low = tree.min_mass(i, self.n_widths)
        high = p.mass + self.n_widths * p.width
        if low >= high:
            raise ConfigurationError(
                f"OffShellMassSampler: {p.name} (pdg {p.pdg}) can not decay, "
                f"threshold {low:.4f} GeV above mass window {high:.4f} GeV"
            )
        return low, high

    def sample(
        self,
        tree: DecayTree,
        i: int,
        n: int,
        generator: Optional[torch.Generator] = None,
        dtype=None,
    ) -> Tensor:
        """Sample n offshell masses for node i with shape=(n,)"""
        dtype = dtype or torch.get_default_dtype()
        p = tree.particle(i)
        low, high = self.window(tree, i)
        if p.stable:
            return torch.full((n,), p.mass, dtype=dtype)

        m2 = p.mass**2
        gm = p.mass * p.width
        y1 = atan((low**2 - m2) / gm)
        y2 = atan((high**2 - m2) / gm)
        r = torch.rand(n, generator=generator, dtype=dtype)
        s = gm * tan(y1 + (y2 - y1) * r) + m2
        return sqrt(torch.clamp(s, min=low**2, max=high**2))
