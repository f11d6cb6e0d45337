# shapes.py
"""
Procedural meshes for the demo scenes and the tests: a cloth grid, a box
surface and a box split into tetrahedra.
"""

from itertools import permutations

import numpy as np

from deformable.mesh.dotmesh import TetMesh
from deformable.types import GEN_MESH, VEC3

# (normal axis, sign) -> (u axis, v axis) with u x v pointing along the normal
FACE_AXES = {
    (0, 1): (1, 2),
    (0, -1): (2, 1),
    (1, 1): (2, 0),
    (1, -1): (0, 2),
    (2, 1): (0, 1),
    (2, -1): (1, 0),
}


def make_grid(
    width: float = 2.0,
    depth: float = 2.0,
    rows: int = 20,
    cols: int = 20,
    height: float = 0.0,
) -> GEN_MESH:
    """Flat rectangular cloth in the XZ plane, centred on the Y axis, normals up."""
    xs = np.linspace(-width / 2.0, width / 2.0, cols + 1)
    zs = np.linspace(-depth / 2.0, depth / 2.0, rows + 1)
    vertices = np.array([[x, height, z] for z in zs for x in xs], dtype=np.float64)

    faces = []
    for r in range(rows):
        for c in range(cols):
            a = r * (cols + 1) + c
            b = a + 1
            d = a + cols + 1
            e = d + 1
            faces.append([a, d, b])
            faces.append([b, d, e])
    return vertices, np.array(faces, dtype=np.int32).reshape(-1, 3)


def _grid_index(g: list[int], counts: tuple[int, int, int]) -> int:
    return (g[0] * (counts[1] + 1) + g[1]) * (counts[2] + 1) + g[2]


def _boundary_quads(counts: tuple[int, int, int]):
    """Yield the four grid coordinates of every boundary quad, wound outward."""
    for (n, sign), (u, v) in FACE_AXES.items():
        fixed = counts[n] if sign > 0 else 0
        for a in range(counts[u]):
            for b in range(counts[v]):
                quad = []
                for du, dv in ((0, 0), (1, 0), (1, 1), (0, 1)):
                    g = [0, 0, 0]
                    g[n], g[u], g[v] = fixed, a + du, b + dv
                    quad.append(g)
                yield quad


def make_box_surface(half_extents: VEC3 = (0.5, 0.5, 0.5), center: VEC3 = (0.0, 0.0, 0.0)) -> GEN_MESH:
    """Closed box with split corners: 24 vertices (4 per face) and 12 triangles."""
    h = np.asarray(half_extents, dtype=np.float64)
    c = np.asarray(center, dtype=np.float64)
    vertices, faces = [], []
    for quad in _boundary_quads((1, 1, 1)):
        base = len(vertices)
        vertices.extend(c + (np.array(g, dtype=np.float64) * 2.0 - 1.0) * h for g in quad)
        faces.append([base, base + 1, base + 2])
        faces.append([base, base + 2, base + 3])
    return np.array(vertices), np.array(faces, dtype=np.int32)


def make_box_tetrahedra(
    lower: VEC3 = (-0.5, -0.5, -0.5),
    upper: VEC3 = (0.5, 0.5, 0.5),
    divisions: tuple[int, int, int] = (1, 1, 1),
) -> TetMesh:
    """Axis-aligned box cut into cubes, each split into six tetrahedra.

    The outer faces are listed as triangles tagged 1 so the box can be fed
    straight to the volumetric builder.
    """
    lower = np.asarray(lower, dtype=np.float64)
    upper = np.asarray(upper, dtype=np.float64)
    counts = tuple(int(d) for d in divisions)
    axes = [np.linspace(lower[k], upper[k], counts[k] + 1) for k in range(3)]

    vertices = np.array(
        [[x, y, z] for x in axes[0] for y in axes[1] for z in axes[2]],
        dtype=np.float64,
    )

    tets = []
    for i in range(counts[0]):
        for j in range(counts[1]):
            for k in range(counts[2]):
                for order in permutations(range(3)):
                    g = [i, j, k]
                    path = [_grid_index(g, counts)]
                    for axis in order:
                        g[axis] += 1
                        path.append(_grid_index(g, counts))
                    tets.append(path)

    triangles = []
    for quad in _boundary_quads(counts):
        a, b, c, d = (_grid_index(g, counts) for g in quad)
        triangles.append([a, b, c])
        triangles.append([a, c, d])

    return TetMesh(
        vertices=vertices,
        vertex_tags=np.zeros(len(vertices), dtype=np.int32),
        triangles=np.array(triangles, dtype=np.int32).reshape(-1, 3),
        triangle_tags=np.ones(len(triangles), dtype=np.int32),
        tetrahedra=np.array(tets, dtype=np.int32).reshape(-1, 4),
    )
