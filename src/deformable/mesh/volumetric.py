# volumetric.py
"""
Volumetric graph construction.

A tetrahedral mesh carries the physics; a separate (usually finer) render mesh
is bound to it by giving every render vertex barycentric weights inside the
first tetrahedron that encloses it.
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
from pathlib import Path

import numpy as np

from deformable.colliders import Collider
from deformable.errors import UnmappedVertexError
from deformable.geometry import (
    BARYCENTRIC_TOLERANCE,
    barycentric_weights_many,
    nearly_equal_many,
    position_key,
    transform_points,
)
from deformable.mesh.dotmesh import TetMesh, load_dotmesh
from deformable.models import Node, Spring, SpringKind, VolumeElement, VolumetricBody
from deformable.params import VolumetricParameters
from deformable.types import FACE, MAT4, POINTS

logger = logging.getLogger(__name__)

# the six edges of a tetrahedron as corner pairs
TET_EDGES = ((0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3))


def referenced_vertices(triangles: FACE) -> np.ndarray:
    """Vertex ids used by ``triangles``, each once, in order of first appearance."""
    flat = np.asarray(triangles, dtype=np.int64).ravel()
    ids, first = np.unique(flat, return_index=True)
    return ids[np.argsort(first)]


def build_volumetric_body(
    tet_mesh: TetMesh,
    render_vertices: POINTS,
    render_triangles: FACE,
    params: VolumetricParameters,
    fixers: Iterable[Collider] = (),
    transform: MAT4 | None = None,
) -> VolumetricBody:
    """Build the volume-spring graph and bind the render mesh to it.

    Tet mesh positions are taken as world coordinates; the render mesh is
    given in its local frame and moved to world space with ``transform``.

    Raises:
        DegenerateElementError: a tetrahedron has no volume.
        UnmappedVertexError: some render vertex lies outside every tetrahedron.
    """
    transform = np.eye(4) if transform is None else np.asarray(transform, dtype=np.float64)
    fixers = list(fixers)

    nodes: list[Node] = []
    for i, p in enumerate(tet_mesh.vertices):
        node = Node(None, p, is_fixed=any(f.contains(p) for f in fixers), mass=0.0, params=params)
        node.index = i
        nodes.append(node)

    surface = tet_mesh.boundary_triangles(1).astype(np.int32)

    elements: list[VolumeElement] = []
    springs: dict[tuple[int, int], Spring] = {}
    for tet in tet_mesh.tetrahedra:
        corners = [nodes[int(v)] for v in tet]
        element = VolumeElement(*corners, density=params.density)
        elements.append(element)
        share = element.volume / 6.0
        for a, b in TET_EDGES:
            na, nb = corners[a], corners[b]
            pair = (min(na.index, nb.index), max(na.index, nb.index))
            spring = springs.get(pair)
            if spring is None:
                springs[pair] = Spring(na, nb, SpringKind.VOLUME, share)
            else:
                spring.volume += share

    _bind_render_vertices(elements, render_vertices, render_triangles, transform, params.weld_tolerance)

    orphans = sum(1 for n in nodes if n.mass <= 0.0)
    if orphans:
        logger.warning("%d tet vertices belong to no element and stay fixed", orphans)
    logger.info(
        "Volumetric body: %d nodes (%d fixed), %d elements, %d volume springs, %d boundary faces",
        len(nodes),
        sum(n.is_fixed for n in nodes),
        len(elements),
        len(springs),
        len(surface),
    )
    return VolumetricBody(
        nodes,
        list(springs.values()),
        surface,
        elements,
        len(np.asarray(render_vertices).reshape(-1, 3)),
        transform,
    )


def _bind_render_vertices(
    elements: list[VolumeElement],
    render_vertices: POINTS,
    render_triangles: FACE,
    transform: MAT4,
    tolerance: float,
) -> None:
    world = transform_points(transform, render_vertices)
    if not elements:
        ids = referenced_vertices(render_triangles)
        if len(ids):
            raise UnmappedVertexError([int(i) for i in ids])
        return

    corners = np.array([e.corners() for e in elements])
    volumes = np.array([e.volume for e in elements])
    owner: dict[tuple, VolumeElement] = {}
    unmapped: list[int] = []

    for vid in referenced_vertices(render_triangles):
        vid = int(vid)
        p = world[vid]
        key = position_key(p, tolerance)
        element = owner.get(key)
        if element is not None:
            element.bind(key, element.bindings[key].weights, vid)
            continue

        weights = barycentric_weights_many(p, corners, volumes)
        hits = np.flatnonzero(nearly_equal_many(weights.sum(axis=1), 1.0, BARYCENTRIC_TOLERANCE))
        if not len(hits):
            unmapped.append(vid)
            continue
        first = int(hits[0])
        elements[first].bind(key, weights[first], vid)
        owner[key] = elements[first]

    if unmapped:
        raise UnmappedVertexError(unmapped)


def load_volumetric_body(
    mesh_path: str | Path,
    render_vertices: POINTS,
    render_triangles: FACE,
    params: VolumetricParameters,
    fixers: Iterable[Collider] = (),
    transform: MAT4 | None = None,
) -> VolumetricBody:
    """:func:`build_volumetric_body` reading the tetrahedra from a ``.mesh`` file."""
    tet_mesh = load_dotmesh(mesh_path)
    return build_volumetric_body(tet_mesh, render_vertices, render_triangles, params, fixers, transform)
