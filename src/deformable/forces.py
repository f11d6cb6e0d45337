# forces.py
"""
Per-element force laws.

Each function evaluates one constraint on raw float64 vectors. The solver
kernels loop over them in bulk, and the graph entities in ``models`` call them
one at a time, so both paths share a single formula.
"""

from numba import njit  # type: ignore
import numpy as np

from deformable.geometry import angle_between, norm3, triangle_height
from deformable.types import VEC3


@njit(fastmath=True, cache=True)  # type: ignore
def spring_force(
    pos_a: VEC3,
    pos_b: VEC3,
    vel_a: VEC3,
    vel_b: VEC3,
    rest_length: float,
    stiffness: float,
    damping: float,
) -> VEC3:
    """Hookean force on endpoint A (endpoint B receives the negation).

    F = -k (L - L0) u - d k (u . (vA - vB)) u, with u pointing from B to A.
    """
    out = np.zeros(3)
    u = pos_a - pos_b
    length = norm3(u)
    if length <= 1e-12:
        return out
    u = u / length
    closing = u[0] * (vel_a[0] - vel_b[0]) + u[1] * (vel_a[1] - vel_b[1]) + u[2] * (vel_a[2] - vel_b[2])
    scale = -stiffness * (length - rest_length) - damping * stiffness * closing
    out[0] = scale * u[0]
    out[1] = scale * u[1]
    out[2] = scale * u[2]
    return out


@njit(fastmath=True, cache=True)  # type: ignore
def volume_spring_force(
    pos_a: VEC3,
    pos_b: VEC3,
    rest_length: float,
    volume: float,
    energy_density: float,
) -> VEC3:
    """Volume-weighted spring force on endpoint A: -(V / L0^2) e (L - L0) u."""
    out = np.zeros(3)
    u = pos_a - pos_b
    length = norm3(u)
    if length <= 1e-12 or rest_length <= 1e-12:
        return out
    scale = -volume / (rest_length * rest_length) * energy_density * (length - rest_length) / length
    out[0] = scale * u[0]
    out[1] = scale * u[1]
    out[2] = scale * u[2]
    return out


@njit(fastmath=True, cache=True)  # type: ignore
def aerodynamic_force(
    p1: VEC3,
    p2: VEC3,
    p3: VEC3,
    v1: VEC3,
    v2: VEC3,
    v3: VEC3,
    wind: VEC3,
    drag: float,
) -> VEC3:
    """Wind force on each of the three nodes of a triangle (already divided by 3)."""
    out = np.zeros(3)
    n = np.cross(p2 - p1, p3 - p1)
    length = norm3(n)
    if length <= 1e-12:
        return out
    area = 0.5 * length
    n = n / length
    rel = wind - (v1 + v2 + v3) / 3.0
    scale = drag * area * (n[0] * rel[0] + n[1] * rel[1] + n[2] * rel[2]) / 3.0
    out[0] = scale * n[0]
    out[1] = scale * n[1]
    out[2] = scale * n[2]
    return out


@njit(fastmath=True, cache=True)  # type: ignore
def hinge_vector(
    x0: VEC3,
    x1: VEC3,
    x2: VEC3,
    x3: VEC3,
    n_own: VEC3,
    n_other: VEC3,
    area_own: float,
    area_other: float,
) -> VEC3:
    """Discrete-shell hinge direction for two triangles sharing edge x1-x2.

    x0 is the vertex opposite the edge in the owning triangle and x3 the one in
    the neighbour. Every vertex contributes cos(alpha)/h times its triangle
    normal, h being the vertex height over the side it faces.
    """
    out = np.zeros(3)
    edge = x2 - x1
    if norm3(edge) <= 1e-12 or area_own <= 1e-12 or area_other <= 1e-12:
        return out

    alpha1 = angle_between(edge, x0 - x1)
    alpha2 = angle_between(-edge, x0 - x2)
    alpha1_p = angle_between(edge, x3 - x1)
    alpha2_p = angle_between(-edge, x3 - x2)

    h0 = triangle_height(area_own, x1, x2)
    h1 = triangle_height(area_own, x0, x2)
    h2 = triangle_height(area_own, x0, x1)
    h0_p = triangle_height(area_other, x1, x2)
    h1_p = triangle_height(area_other, x2, x3)
    h2_p = triangle_height(area_other, x1, x3)
    if h0 <= 1e-12 or h1 <= 1e-12 or h2 <= 1e-12 or h0_p <= 1e-12 or h1_p <= 1e-12 or h2_p <= 1e-12:
        return out

    g0 = -1.0 / h0 * n_own
    g1 = np.cos(alpha2) / h1 * n_own + np.cos(alpha2_p) / h1_p * n_other
    g2 = np.cos(alpha1) / h2 * n_own + np.cos(alpha1_p) / h2_p * n_other
    g3 = -1.0 / h0_p * n_other
    return g0 + g1 + g2 + g3


@njit(fastmath=True, cache=True)  # type: ignore
def bending_energy(theta: float, theta0: float, stiffness: float) -> float:
    return 0.5 * stiffness * (theta - theta0) ** 2
