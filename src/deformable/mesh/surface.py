# surface.py
"""
Cloth graph construction.

Render vertices that land on the same world position (within
``weld_tolerance``) collapse into one Node, so seams with split vertices are
stitched back together. Every triangle contributes its three edges as
structural springs; a shared edge yields a single spring.
"""

from __future__ import annotations

from collections.abc import Iterable
import logging

import numpy as np

from deformable.colliders import Collider
from deformable.geometry import Edge, Triangle, position_key, transform_points
from deformable.models import (
    DihedralBending,
    Hinge,
    Node,
    Spring,
    SpringBending,
    SpringKind,
    SurfaceBody,
    SurfaceTriangle,
)
from deformable.params import BendingModel, ClothParameters
from deformable.types import FACE, MAT4, POINTS

logger = logging.getLogger(__name__)


class _ExtraSpringState:
    """Pairs the two vertices opposite a shared edge with a bending spring.

    ``structural`` is the builder's live set of structural node pairs. A node
    pair carries at most one spring and a structural spring always takes it,
    including one whose edge is only reached by a later triangle.
    """

    def __init__(self, nodes: list[Node], structural: set[tuple[int, int]]) -> None:
        self.nodes = nodes
        self.structural = structural
        self.first_seen: dict[Edge, Edge] = {}
        self.pairs: dict[tuple[int, int], Spring] = {}

    def visit(self, edge: Edge, triangle: SurfaceTriangle) -> None:
        first = self.first_seen.setdefault(edge, edge)
        if first is edge or first.other == edge.other:
            return
        pair = (min(first.other, edge.other), max(first.other, edge.other))
        if pair in self.pairs or pair in self.structural:
            return
        self.pairs[pair] = Spring(self.nodes[first.other], self.nodes[edge.other], SpringKind.BENDING)

    def result(self) -> SpringBending:
        return SpringBending([s for pair, s in self.pairs.items() if pair not in self.structural])


class _DihedralState:
    """Records neighbouring triangles and their rest angle across each shared edge."""

    def __init__(self, nodes: list[Node]) -> None:
        self.nodes = nodes
        self.first_seen: dict[Edge, tuple[Edge, SurfaceTriangle]] = {}
        self.hinges: list[Hinge] = []

    def visit(self, edge: Edge, triangle: SurfaceTriangle) -> None:
        first, owner = self.first_seen.setdefault(edge, (edge, triangle))
        if owner is triangle:
            return
        theta0 = owner.add_neighbour(triangle)
        triangle.add_neighbour(owner)

        x1, x2 = self.nodes[first.v1], self.nodes[first.v2]
        a, b = self.nodes[first.other], self.nodes[edge.other]
        self.hinges.append(Hinge(owner, triangle, a, x1, x2, b, theta0))
        self.hinges.append(Hinge(triangle, owner, b, x1, x2, a, theta0))

    def result(self) -> DihedralBending:
        return DihedralBending(self.hinges)


def _bending_state(
    model: BendingModel, nodes: list[Node], structural: set[tuple[int, int]]
) -> _ExtraSpringState | _DihedralState:
    if model is BendingModel.DIHEDRAL:
        return _DihedralState(nodes)
    return _ExtraSpringState(nodes, structural)


def build_surface_body(
    vertices: POINTS,
    triangles: FACE,
    params: ClothParameters,
    fixers: Iterable[Collider] = (),
    transform: MAT4 | None = None,
) -> SurfaceBody:
    """Build the mass-spring graph of a triangulated surface.

    Args:
        vertices: (V, 3) positions in the mesh's local frame.
        triangles: (T, 3) vertex indices; winding sets the normal direction.
        params: cloth parameters (mass, stiffness, bending model, weld tolerance).
        fixers: volumes whose interior pins nodes in place.
        transform: local-to-world 4x4 matrix, identity when omitted.

    Returns:
        A fully built :class:`SurfaceBody`.
    """
    transform = np.eye(4) if transform is None else np.asarray(transform, dtype=np.float64)
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    triangles = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
    if triangles.size and (triangles.min() < 0 or triangles.max() >= len(vertices)):
        raise IndexError("triangle index outside the vertex array")

    world = transform_points(transform, vertices)
    fixers = list(fixers)

    nodes: list[Node] = []
    by_key: dict[tuple, Node] = {}

    def node_for(vid: int) -> Node:
        p = world[vid]
        key = position_key(p, params.weld_tolerance)
        node = by_key.get(key)
        if node is None:
            fixed = any(f.contains(p) for f in fixers)
            node = Node(vid, p, is_fixed=fixed, mass=params.node_mass, params=params)
            node.index = len(nodes)
            nodes.append(node)
            by_key[key] = node
        else:
            node.add_id(vid)
        return node

    springs: list[Spring] = []
    spring_pairs: set[tuple[int, int]] = set()
    surface: list[SurfaceTriangle] = []
    bending = _bending_state(params.bending_model, nodes, spring_pairs)
    skipped = 0

    for v1, v2, v3 in triangles:
        n1, n2, n3 = node_for(int(v1)), node_for(int(v2)), node_for(int(v3))
        if n1 is n2 or n1 is n3 or n2 is n3:
            skipped += 1
            continue

        tri = SurfaceTriangle(n1, n2, n3)
        surface.append(tri)

        for edge in Triangle(n1.index, n2.index, n3.index).edges:
            pair = (min(edge.v1, edge.v2), max(edge.v1, edge.v2))
            if pair not in spring_pairs:
                spring_pairs.add(pair)
                springs.append(Spring(nodes[edge.v1], nodes[edge.v2], SpringKind.STRUCTURAL))
            bending.visit(edge, tri)

    result = bending.result()
    if skipped:
        logger.warning("Skipped %d triangles whose vertices were welded together", skipped)
    logger.info(
        "Surface body: %d nodes (%d fixed), %d structural springs, %d triangles, %s",
        len(nodes),
        sum(n.is_fixed for n in nodes),
        len(springs),
        len(surface),
        f"{len(result.springs)} bending springs" if isinstance(result, SpringBending) else f"{len(result.hinges)} hinges",
    )
    return SurfaceBody(nodes, springs, surface, result, len(vertices), transform)
