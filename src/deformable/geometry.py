# geometry.py
"""
Geometry primitives shared by the graph builders and the physics kernels.

The scalar helpers are compiled with numba so the solver kernels can call them
directly; they also work from plain Python on float64 arrays.
"""

from __future__ import annotations

import sys

from numba import njit  # type: ignore
import numpy as np

from deformable.types import MAT4, POINTS, VEC3

BARYCENTRIC_TOLERANCE = 1e-4


# ===============================
# INDEX TOPOLOGY
# ===============================


class Edge:
    """Undirected edge of a triangle plus the triangle's third ("opposite") vertex.

    Equality and hashing only look at the unordered pair, so the same edge seen
    from both neighbouring triangles compares equal.
    """

    __slots__ = ["v1", "v2", "other"]

    def __init__(self, v1: int, v2: int, other: int) -> None:
        self.v1, self.v2, self.other = v1, v2, other

    def __eq__(self, obj: object) -> bool:
        if not isinstance(obj, Edge):
            return NotImplemented
        return (self.v1 == obj.v1 and self.v2 == obj.v2) or (
            self.v1 == obj.v2 and self.v2 == obj.v1
        )

    def __hash__(self) -> int:
        return hash(frozenset((self.v1, self.v2)))

    def __repr__(self) -> str:
        return f"Edge({self.v1}, {self.v2} | {self.other})"


class Triangle:
    """Index triple with its three edges in a fixed visitation order."""

    __slots__ = ["v1", "v2", "v3", "edges"]

    def __init__(self, v1: int, v2: int, v3: int) -> None:
        self.v1, self.v2, self.v3 = v1, v2, v3
        self.edges = (
            Edge(v1, v2, v3),
            Edge(v1, v3, v2),
            Edge(v2, v3, v1),
        )

    def __repr__(self) -> str:
        return f"Triangle({self.v1}, {self.v2}, {self.v3})"


# ===============================
# SCALAR KERNELS
# ===============================


@njit(fastmath=True, cache=True)  # type: ignore
def norm3(v: VEC3) -> float:
    return np.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])


@njit(fastmath=True, cache=True)  # type: ignore
def triangle_area(a: VEC3, b: VEC3, c: VEC3) -> float:
    return 0.5 * norm3(np.cross(b - a, c - a))


@njit(fastmath=True, cache=True)  # type: ignore
def triangle_normal(a: VEC3, b: VEC3, c: VEC3) -> VEC3:
    """Unit normal following the a -> b -> c winding; zero for a degenerate triangle."""
    n = np.cross(b - a, c - a)
    length = norm3(n)
    if length <= 1e-12:
        return np.zeros(3)
    return n / length


@njit(fastmath=True, cache=True)  # type: ignore
def triangle_height(area: float, p1: VEC3, p2: VEC3) -> float:
    """Height of a triangle with the given area over the side p1-p2."""
    base = norm3(p2 - p1)
    if base <= 1e-12:
        return 0.0
    return 2.0 * area / base


@njit(fastmath=True, cache=True)  # type: ignore
def angle_between(u: VEC3, v: VEC3) -> float:
    """Unsigned angle in radians; zero if either vector is null."""
    lu = norm3(u)
    lv = norm3(v)
    if lu <= 1e-12 or lv <= 1e-12:
        return 0.0
    c = (u[0] * v[0] + u[1] * v[1] + u[2] * v[2]) / (lu * lv)
    return np.arccos(min(1.0, max(-1.0, c)))


@njit(fastmath=True, cache=True)  # type: ignore
def tetrahedron_volume(a: VEC3, b: VEC3, c: VEC3, d: VEC3) -> float:
    """Unsigned volume of the tetrahedron abcd."""
    u = a - d
    n = np.cross(b - d, c - d)
    return abs(u[0] * n[0] + u[1] * n[1] + u[2] * n[2]) / 6.0


def barycentric_weights(point: VEC3, corners: POINTS, volume: float | None = None) -> VEC3:
    """Volume-ratio weights of ``point`` against the four ``corners``.

    Weight i is the volume of the tetrahedron with corner i swapped for the
    point, divided by the full volume. The weights sum to one exactly when the
    point lies inside (or on) the tetrahedron.
    """
    a, b, c, d = (np.asarray(x, dtype=np.float64) for x in corners)
    p = np.asarray(point, dtype=np.float64)
    if volume is None:
        volume = tetrahedron_volume(a, b, c, d)
    return np.array(
        [
            tetrahedron_volume(p, b, c, d),
            tetrahedron_volume(a, p, c, d),
            tetrahedron_volume(a, b, p, d),
            tetrahedron_volume(a, b, c, p),
        ]
    ) / volume


def barycentric_weights_many(point: VEC3, corners: np.ndarray, volumes: np.ndarray) -> np.ndarray:
    """Vectorised :func:`barycentric_weights` against every tetrahedron at once.

    ``corners`` is (E, 4, 3) and ``volumes`` (E,); returns (E, 4).
    """
    p = np.asarray(point, dtype=np.float64)
    weights = np.empty((len(corners), 4), dtype=np.float64)
    for i in range(4):
        swapped = corners.copy()
        swapped[:, i, :] = p
        a, b, c, d = swapped[:, 0], swapped[:, 1], swapped[:, 2], swapped[:, 3]
        sub = np.abs(np.einsum("ij,ij->i", a - d, np.cross(b - d, c - d))) / 6.0
        weights[:, i] = sub / volumes
    return weights


# ===============================
# COMPARISONS & KEYS
# ===============================


def nearly_equal(a: float, b: float, epsilon: float = BARYCENTRIC_TOLERANCE) -> bool:
    """Relative float comparison (https://floating-point-gui.de/errors/comparison/)."""
    if a == b:
        return True
    diff = abs(a - b)
    tiny = sys.float_info.min
    if a == 0.0 or b == 0.0 or diff < tiny:
        return diff < epsilon * tiny
    return diff / (abs(a) + abs(b)) < epsilon


def nearly_equal_many(values: np.ndarray, target: float, epsilon: float = BARYCENTRIC_TOLERANCE) -> np.ndarray:
    """Element-wise :func:`nearly_equal` of ``values`` against a non-zero target."""
    values = np.asarray(values, dtype=np.float64)
    diff = np.abs(values - target)
    with np.errstate(divide="ignore", invalid="ignore"):
        relative = diff / (np.abs(values) + abs(target))
    return (values == target) | (np.isfinite(relative) & (relative < epsilon))


def position_key(point: VEC3, tolerance: float) -> tuple:
    """Hashable key that merges positions falling in the same ``tolerance`` cell."""
    if tolerance <= 0.0:
        return tuple(float(c) for c in point)
    return tuple(int(round(float(c) / tolerance)) for c in point)


# ===============================
# TRANSFORMS
# ===============================


def transform_points(transform: MAT4, points: POINTS) -> POINTS:
    """Apply a 4x4 affine transform to (N, 3) points."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return points @ transform[:3, :3].T + transform[:3, 3]


def inverse_transform_points(transform: MAT4, points: POINTS) -> POINTS:
    return transform_points(np.linalg.inv(transform), points)
