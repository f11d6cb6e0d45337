# models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from deformable.errors import DegenerateElementError
from deformable.forces import spring_force, volume_spring_force
from deformable.geometry import (
    BARYCENTRIC_TOLERANCE,
    angle_between,
    barycentric_weights,
    nearly_equal,
    tetrahedron_volume,
    triangle_area,
    triangle_normal,
)
from deformable.types import MAT4, POINTS, VEC3

if TYPE_CHECKING:
    from deformable.params import SimulationParameters

DEGENERATE_VOLUME = 1e-12


class Node:
    """A point mass of the graph.

    ``ids`` holds every render/mesh vertex id that collapsed onto this node, in
    the order they were first seen.
    """

    def __init__(
        self,
        vertex_id: int | None,
        position: VEC3,
        is_fixed: bool = False,
        mass: float = 0.0,
        params: SimulationParameters | None = None,
    ) -> None:
        self.pos = np.array(position, dtype=np.float64)
        self.vel = np.zeros(3)
        self.force = np.zeros(3)
        self.jacobian = np.zeros((4, 4))
        self.mass = mass
        self.is_fixed = is_fixed
        self.params = params
        self.index = -1  # slot in the solver arrays, set by the builders
        self.ids: list[int] = []
        if vertex_id is not None:
            self.add_id(vertex_id)

    def add_id(self, vertex_id: int) -> None:
        if vertex_id not in self.ids:
            self.ids.append(vertex_id)

    def add_force(self, force: VEC3) -> None:
        self.force += force

    def reset(self) -> None:
        self.force[:] = 0.0
        self.jacobian[:] = 0.0

    def __eq__(self, obj: object) -> bool:
        if not isinstance(obj, Node):
            return NotImplemented
        return bool(np.array_equal(self.pos, obj.pos))

    def __hash__(self) -> int:
        return hash(tuple(self.pos.tolist()))

    def __repr__(self) -> str:
        x, y, z = self.pos
        return f"Node({x:.4f}, {y:.4f}, {z:.4f}, ids={self.ids})"


class SpringKind(Enum):
    STRUCTURAL = 0
    BENDING = 1
    VOLUME = 2


class Spring:
    def __init__(self, a: Node, b: Node, kind: SpringKind = SpringKind.STRUCTURAL, volume: float = 0.0) -> None:
        self.a = a
        self.b = b
        self.kind = kind
        self.volume = volume
        self.rest_length = float(np.linalg.norm(a.pos - b.pos))

    def key(self) -> frozenset[int]:
        return frozenset((id(self.a), id(self.b)))

    def compute_force(self, params: SimulationParameters) -> VEC3:
        """Force on endpoint ``a``; endpoint ``b`` receives the negation."""
        if self.kind is SpringKind.VOLUME:
            return volume_spring_force(
                self.a.pos,
                self.b.pos,
                self.rest_length,
                self.volume,
                params.elastic_energy_density,  # type: ignore[attr-defined]
            )
        stiffness = (
            params.structural_stiffness  # type: ignore[attr-defined]
            if self.kind is SpringKind.STRUCTURAL
            else params.bending_stiffness  # type: ignore[attr-defined]
        )
        return spring_force(
            self.a.pos,
            self.b.pos,
            self.a.vel,
            self.b.vel,
            self.rest_length,
            stiffness,
            params.spring_damping,
        )

    def apply(self, params: SimulationParameters) -> None:
        f = self.compute_force(params)
        self.a.add_force(f)
        self.b.add_force(-f)

    def __eq__(self, obj: object) -> bool:
        if not isinstance(obj, Spring):
            return NotImplemented
        return self.key() == obj.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __repr__(self) -> str:
        return f"Spring({self.kind.name}, L0={self.rest_length:.4f})"


class SurfaceTriangle:
    """Three nodes in winding order, with cached normal and area."""

    def __init__(self, n1: Node, n2: Node, n3: Node) -> None:
        self.nodes = (n1, n2, n3)
        self.normal = np.zeros(3)
        self.area = 0.0
        # neighbour -> rest dihedral angle (radians)
        self.neighbours: dict[SurfaceTriangle, float] = {}
        self.update_geometry()

    def update_geometry(self) -> None:
        a, b, c = (n.pos for n in self.nodes)
        self.normal = triangle_normal(a, b, c)
        self.area = triangle_area(a, b, c)

    def add_neighbour(self, other: SurfaceTriangle) -> float:
        theta0 = angle_between(self.normal, other.normal)
        self.neighbours[other] = theta0
        return theta0

    def opposite(self, a: Node, b: Node) -> Node:
        for n in self.nodes:
            if n is not a and n is not b:
                return n
        raise ValueError("edge does not belong to this triangle")

    def __repr__(self) -> str:
        return f"SurfaceTriangle(area={self.area:.4f})"


@dataclass
class VertexWeights:
    weights: VEC3
    ids: list[int] = field(default_factory=list)


class VolumeElement:
    """Tetrahedron of four nodes carrying barycentric bindings for render vertices."""

    def __init__(self, n1: Node, n2: Node, n3: Node, n4: Node, density: float = 1.0) -> None:
        self.nodes = (n1, n2, n3, n4)
        self.volume = tetrahedron_volume(n1.pos, n2.pos, n3.pos, n4.pos)
        if self.volume < DEGENERATE_VOLUME:
            raise DegenerateElementError(f"tetrahedron volume {self.volume:.3e} is below {DEGENERATE_VOLUME:g}")
        self.mass = density * self.volume
        for n in self.nodes:
            n.mass += self.mass / 4.0
        self.bindings: dict[tuple, VertexWeights] = {}

    def corners(self) -> POINTS:
        return np.array([n.pos for n in self.nodes])

    def weights(self, point: VEC3) -> VEC3:
        return barycentric_weights(point, self.corners(), self.volume)

    def contains(self, point: VEC3) -> bool:
        return nearly_equal(float(self.weights(point).sum()), 1.0, BARYCENTRIC_TOLERANCE)

    def bind(self, key: tuple, weights: VEC3, vertex_id: int) -> VertexWeights:
        binding = self.bindings.get(key)
        if binding is None:
            binding = VertexWeights(np.asarray(weights, dtype=np.float64))
            self.bindings[key] = binding
        if vertex_id not in binding.ids:
            binding.ids.append(vertex_id)
        return binding

    def interpolate(self, weights: VEC3) -> VEC3:
        return weights @ self.corners()


# ===============================
# BENDING VARIANTS
# ===============================


@dataclass
class SpringBending:
    springs: list[Spring]


@dataclass
class Hinge:
    """One ordered (triangle, neighbour) pair across the shared edge x1-x2."""

    triangle: SurfaceTriangle
    neighbour: SurfaceTriangle
    x0: Node
    x1: Node
    x2: Node
    x3: Node
    theta0: float


@dataclass
class DihedralBending:
    hinges: list[Hinge]


Bending = SpringBending | DihedralBending


# ===============================
# BODIES
# ===============================


@dataclass
class SurfaceBody:
    nodes: list[Node]
    springs: list[Spring]
    triangles: list[SurfaceTriangle]
    bending: Bending
    vertex_count: int
    transform: MAT4 = field(default_factory=lambda: np.eye(4))

    def render_map(self) -> tuple[np.ndarray, np.ndarray]:
        """(vertex ids, node index) pairs for every vertex collapsed onto a node."""
        ids, slots = [], []
        for node in self.nodes:
            for vid in node.ids:
                ids.append(vid)
                slots.append(node.index)
        return np.array(ids, dtype=np.int32), np.array(slots, dtype=np.int32)


@dataclass
class VolumetricBody:
    nodes: list[Node]
    springs: list[Spring]
    # boundary faces of the tet mesh as node-index triples
    surface: np.ndarray
    elements: list[VolumeElement]
    vertex_count: int
    transform: MAT4 = field(default_factory=lambda: np.eye(4))

    def render_map(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(vertex ids, element index, weights) for every bound render vertex."""
        ids, elements, weights = [], [], []
        for e, element in enumerate(self.elements):
            for binding in element.bindings.values():
                for vid in binding.ids:
                    ids.append(vid)
                    elements.append(e)
                    weights.append(binding.weights)
        return (
            np.array(ids, dtype=np.int32),
            np.array(elements, dtype=np.int32),
            np.array(weights, dtype=np.float64).reshape(-1, 4),
        )
