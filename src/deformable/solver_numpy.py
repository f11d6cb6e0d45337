# solver_numpy.py
"""
Mass-spring solver on flat numpy arrays.

The graph built by the mesh builders is copied into contiguous arrays once;
numba kernels then run the per-sub-step pipeline:

1. node forces (gravity, damping) and collision Jacobians
2. spring forces (structural/bending or volume springs)
3. aerodynamic forces on the surface triangles
4. dihedral bending (cloth with the dihedral model only)
5. semi-implicit integration with a per-node collision correction
"""

from __future__ import annotations

from collections.abc import Iterable
import logging

from numba import njit, prange  # type: ignore
import numpy as np

from deformable.colliders import Collider
from deformable.forces import (
    aerodynamic_force,
    bending_energy,
    hinge_vector,
    spring_force,
    volume_spring_force,
)
from deformable.geometry import angle_between, inverse_transform_points, triangle_area, triangle_normal
from deformable.models import DihedralBending, SpringBending, SpringKind, SurfaceBody, VolumetricBody
from deformable.params import IntegrationMethod, SimulationParameters
from deformable.types import INDEX, MASK, POINTS

logger = logging.getLogger(__name__)

SINGULAR_DETERMINANT = 1e-12

# ===============================
# PHYSICS KERNELS
# ===============================


@njit(fastmath=True, cache=True, parallel=True)  # type: ignore
def accumulate_node_forces(
    vel: POINTS,
    force: POINTS,
    jac: np.ndarray,
    mass: np.ndarray,
    fixed: MASK,
    gravity: np.ndarray,
    damping: float,
) -> None:
    """Reset forces and Jacobians, then add gravity and linear drag."""
    for i in prange(len(vel)):
        for r in range(3):
            force[i, r] = 0.0
            for c in range(3):
                jac[i, r, c] = 0.0
        if fixed[i]:
            continue
        m = mass[i]
        force[i, 0] = m * gravity[0] - damping * m * vel[i, 0]
        force[i, 1] = m * gravity[1] - damping * m * vel[i, 1]
        force[i, 2] = m * gravity[2] - damping * m * vel[i, 2]


def color_elements(elements: np.ndarray, num_nodes: int) -> list[INDEX]:
    """Greedy colouring: returns groups of element indices that share no node.

    ``elements`` is (M, k): the node indices touched by each element (springs,
    triangles). Elements inside a group can be processed in parallel.
    """
    elements = np.asarray(elements, dtype=np.int64)
    if len(elements) == 0:
        return []
    colors = np.full(len(elements), -1, dtype=np.int32)
    neighbor_colors: list[set[int]] = [set() for _ in range(num_nodes)]

    for e, nodes in enumerate(elements):
        used: set[int] = set()
        for n in nodes:
            used |= neighbor_colors[n]
        c = 0
        while c in used:
            c += 1
        colors[e] = c
        for n in nodes:
            neighbor_colors[n].add(c)

    num_colors = int(colors.max()) + 1
    return [np.where(colors == c)[0].astype(np.int32) for c in range(num_colors)]


@njit(fastmath=True, cache=True, parallel=True)  # type: ignore
def solve_springs_group(
    pos: POINTS,
    vel: POINTS,
    force: POINTS,
    group: INDEX,
    spring_i: INDEX,
    spring_j: INDEX,
    rest_lengths: np.ndarray,
    stiffness: np.ndarray,
    damping: float,
) -> None:
    """Hookean springs of one colour group; no two springs share a node."""
    for k in prange(len(group)):
        s = group[k]
        a = spring_i[s]
        b = spring_j[s]
        f = spring_force(pos[a], pos[b], vel[a], vel[b], rest_lengths[s], stiffness[s], damping)
        for c in range(3):
            force[a, c] += f[c]
            force[b, c] -= f[c]


@njit(fastmath=True, cache=True, parallel=True)  # type: ignore
def solve_volume_springs_group(
    pos: POINTS,
    force: POINTS,
    group: INDEX,
    spring_i: INDEX,
    spring_j: INDEX,
    rest_lengths: np.ndarray,
    volumes: np.ndarray,
    energy_density: float,
) -> None:
    for k in prange(len(group)):
        s = group[k]
        a = spring_i[s]
        b = spring_j[s]
        f = volume_spring_force(pos[a], pos[b], rest_lengths[s], volumes[s], energy_density)
        for c in range(3):
            force[a, c] += f[c]
            force[b, c] -= f[c]


@njit(fastmath=True, cache=True, parallel=True)  # type: ignore
def apply_aerodynamics_group(
    pos: POINTS,
    vel: POINTS,
    force: POINTS,
    group: INDEX,
    triangles: np.ndarray,
    wind: np.ndarray,
    drag: float,
) -> None:
    for k in prange(len(group)):
        t = group[k]
        i1, i2, i3 = triangles[t, 0], triangles[t, 1], triangles[t, 2]
        f = aerodynamic_force(pos[i1], pos[i2], pos[i3], vel[i1], vel[i2], vel[i3], wind, drag)
        for c in range(3):
            force[i1, c] += f[c]
            force[i2, c] += f[c]
            force[i3, c] += f[c]


@njit(fastmath=True, cache=True)  # type: ignore
def apply_dihedral_bending(
    pos: POINTS,
    force: POINTS,
    own: np.ndarray,
    other: np.ndarray,
    corners: np.ndarray,
    theta0: np.ndarray,
    stiffness: float,
) -> None:
    """Serial pass over the hinges.

    ``own``/``other`` hold the node triples of the two triangles in winding
    order, ``corners`` the (x0, x1, x2, x3) node indices of each hinge.
    """
    for h in range(len(own)):
        a, b, c = own[h, 0], own[h, 1], own[h, 2]
        p, q, r = other[h, 0], other[h, 1], other[h, 2]
        n_own = triangle_normal(pos[a], pos[b], pos[c])
        n_other = triangle_normal(pos[p], pos[q], pos[r])
        area_own = triangle_area(pos[a], pos[b], pos[c])
        area_other = triangle_area(pos[p], pos[q], pos[r])

        theta = angle_between(n_own, n_other)
        energy = bending_energy(theta, theta0[h], stiffness)
        g = hinge_vector(
            pos[corners[h, 0]],
            pos[corners[h, 1]],
            pos[corners[h, 2]],
            pos[corners[h, 3]],
            n_own,
            n_other,
            area_own,
            area_other,
        )
        for k in range(3):
            f = -g[k] * energy / 3.0
            force[a, k] += f
            force[b, k] += f
            force[c, k] += f


@njit(fastmath=True, cache=True, parallel=True)  # type: ignore
def integrate(
    pos: POINTS,
    vel: POINTS,
    force: POINTS,
    jac: np.ndarray,
    mass: np.ndarray,
    fixed: MASK,
    h: float,
    symplectic: bool,
) -> None:
    """Semi-implicit step; the velocity solves (I - h^2/m J) v' = v + h/m F."""
    for i in prange(len(pos)):
        if fixed[i]:
            continue
        m = mass[i]

        if not symplectic:
            for c in range(3):
                pos[i, c] += h * vel[i, c]

        vx = vel[i, 0] + h / m * force[i, 0]
        vy = vel[i, 1] + h / m * force[i, 1]
        vz = vel[i, 2] + h / m * force[i, 2]

        has_contact = False
        for r in range(3):
            for c in range(3):
                if jac[i, r, c] != 0.0:
                    has_contact = True

        if has_contact:
            s = h * h / m
            a00 = 1.0 - s * jac[i, 0, 0]
            a01 = -s * jac[i, 0, 1]
            a02 = -s * jac[i, 0, 2]
            a10 = -s * jac[i, 1, 0]
            a11 = 1.0 - s * jac[i, 1, 1]
            a12 = -s * jac[i, 1, 2]
            a20 = -s * jac[i, 2, 0]
            a21 = -s * jac[i, 2, 1]
            a22 = 1.0 - s * jac[i, 2, 2]

            c00 = a11 * a22 - a12 * a21
            c01 = a12 * a20 - a10 * a22
            c02 = a10 * a21 - a11 * a20
            det = a00 * c00 + a01 * c01 + a02 * c02
            # singular: keep the uncorrected velocity this step
            if abs(det) >= SINGULAR_DETERMINANT:
                inv = 1.0 / det
                nx = (c00 * vx + (a02 * a21 - a01 * a22) * vy + (a01 * a12 - a02 * a11) * vz) * inv
                ny = (c01 * vx + (a00 * a22 - a02 * a20) * vy + (a02 * a10 - a00 * a12) * vz) * inv
                nz = (c02 * vx + (a01 * a20 - a00 * a21) * vy + (a00 * a11 - a01 * a10) * vz) * inv
                vx, vy, vz = nx, ny, nz

        vel[i, 0] = vx
        vel[i, 1] = vy
        vel[i, 2] = vz

        if symplectic:
            for c in range(3):
                pos[i, c] += h * vel[i, c]


# ===============================
# SOLVER CLASS
# ===============================


class MassSpringSolver:
    """
    Runs a :class:`SurfaceBody` or :class:`VolumetricBody`.

    The body kind is resolved here once; ``step`` then dispatches to a fixed
    list of kernels. Node state lives in ``pos``/``vel``/``force``/``jac``;
    call :meth:`sync_to_nodes` to copy it back onto the graph entities.
    """

    def __init__(
        self,
        body: SurfaceBody | VolumetricBody,
        params: SimulationParameters,
        colliders: Iterable[Collider] = (),
    ) -> None:
        self.body = body
        self.params = params
        self.colliders = list(colliders)

        nodes = body.nodes
        n = len(nodes)
        p_to_idx = {id(p): i for i, p in enumerate(nodes)}
        self.pos = np.array([p.pos for p in nodes], dtype=np.float64).reshape(n, 3)
        self.vel = np.array([p.vel for p in nodes], dtype=np.float64).reshape(n, 3)
        self.force = np.zeros((n, 3))
        self.jac = np.zeros((n, 3, 3))
        self.mass = np.array([p.mass for p in nodes], dtype=np.float64)
        # massless nodes (tet vertices in no element) cannot be integrated
        self.fixed_mask = np.array([p.is_fixed or p.mass <= 0.0 for p in nodes], dtype=np.bool_).reshape(n)

        springs = body.springs
        self.spring_i = np.array([p_to_idx[id(s.a)] for s in springs], dtype=np.int32)
        self.spring_j = np.array([p_to_idx[id(s.b)] for s in springs], dtype=np.int32)
        self.rest_lengths = np.array([s.rest_length for s in springs], dtype=np.float64)
        self.spring_volumes = np.array([s.volume for s in springs], dtype=np.float64)

        if isinstance(body, SurfaceBody):
            self.triangles = np.array(
                [[p_to_idx[id(x)] for x in t.nodes] for t in body.triangles], dtype=np.int32
            ).reshape(-1, 3)
            self._init_cloth(body, p_to_idx)
        else:
            self.triangles = np.asarray(body.surface, dtype=np.int32).reshape(-1, 3)
            self._spring_pass = self._volume_springs
            self._bending_pass = None
            self._render_nodes = np.array(
                [[p_to_idx[id(x)] for x in e.nodes] for e in body.elements], dtype=np.int32
            ).reshape(-1, 4)
            self._render_ids, self._render_elements, self._render_weights = body.render_map()

        self.spring_color_groups = color_elements(np.stack([self.spring_i, self.spring_j], axis=1), n)
        self.triangle_color_groups = color_elements(self.triangles, n)

        self.is_exploded = False
        self.steps_stable = 0

        logger.info(
            "Solver initialized: %d nodes (%d fixed), %d springs in %d groups, %d triangles in %d groups, %d colliders, %s",
            n,
            int(self.fixed_mask.sum()),
            len(springs),
            len(self.spring_color_groups),
            len(self.triangles),
            len(self.triangle_color_groups),
            len(self.colliders),
            self.params.integration_method.value,
        )

    def _init_cloth(self, body: SurfaceBody, p_to_idx: dict[int, int]) -> None:
        params = self.params
        self.spring_stiffness = np.array(
            [
                params.structural_stiffness if s.kind is SpringKind.STRUCTURAL else params.bending_stiffness  # type: ignore[attr-defined]
                for s in body.springs
            ],
            dtype=np.float64,
        )

        bending = body.bending
        if isinstance(bending, SpringBending):
            extra = bending.springs
            self.spring_i = np.concatenate(
                [self.spring_i, np.array([p_to_idx[id(s.a)] for s in extra], dtype=np.int32)]
            )
            self.spring_j = np.concatenate(
                [self.spring_j, np.array([p_to_idx[id(s.b)] for s in extra], dtype=np.int32)]
            )
            self.rest_lengths = np.concatenate([self.rest_lengths, [s.rest_length for s in extra]])
            self.spring_volumes = np.concatenate([self.spring_volumes, np.zeros(len(extra))])
            self.spring_stiffness = np.concatenate(
                [self.spring_stiffness, np.full(len(extra), params.bending_stiffness)]  # type: ignore[attr-defined]
            )
            self._bending_pass = None
        elif isinstance(bending, DihedralBending):
            hinges = bending.hinges
            self.hinge_own = np.array(
                [[p_to_idx[id(x)] for x in h.triangle.nodes] for h in hinges], dtype=np.int32
            ).reshape(-1, 3)
            self.hinge_other = np.array(
                [[p_to_idx[id(x)] for x in h.neighbour.nodes] for h in hinges], dtype=np.int32
            ).reshape(-1, 3)
            self.hinge_corners = np.array(
                [[p_to_idx[id(h.x0)], p_to_idx[id(h.x1)], p_to_idx[id(h.x2)], p_to_idx[id(h.x3)]] for h in hinges],
                dtype=np.int32,
            ).reshape(-1, 4)
            self.hinge_theta0 = np.array([h.theta0 for h in hinges], dtype=np.float64)
            self._bending_pass = self._dihedral_bending

        self._spring_pass = self._cloth_springs
        self._render_ids, self._render_slots = body.render_map()

    # ---- per-step passes ----

    def _cloth_springs(self) -> None:
        for group in self.spring_color_groups:
            solve_springs_group(
                self.pos,
                self.vel,
                self.force,
                group,
                self.spring_i,
                self.spring_j,
                self.rest_lengths,
                self.spring_stiffness,
                self.params.spring_damping,
            )

    def _volume_springs(self) -> None:
        for group in self.spring_color_groups:
            solve_volume_springs_group(
                self.pos,
                self.force,
                group,
                self.spring_i,
                self.spring_j,
                self.rest_lengths,
                self.spring_volumes,
                self.params.elastic_energy_density,  # type: ignore[attr-defined]
            )

    def _dihedral_bending(self) -> None:
        apply_dihedral_bending(
            self.pos,
            self.force,
            self.hinge_own,
            self.hinge_other,
            self.hinge_corners,
            self.hinge_theta0,
            self.params.bending_stiffness,  # type: ignore[attr-defined]
        )

    def _collisions(self) -> None:
        """Overwrite the Jacobian of every node inside a collider; later colliders win."""
        k = self.params.penalty_stiffness
        for collider in self.colliders:
            inside = collider.contains_many(self.pos) & ~self.fixed_mask
            if not inside.any():
                continue
            n = collider.normals(self.pos[inside])
            self.jac[inside] = -k * np.einsum("ni,nj->nij", n, n)

    def step(self, h: float) -> None:
        """Advance one sub-step of length ``h``."""
        params = self.params
        accumulate_node_forces(
            self.vel,
            self.force,
            self.jac,
            self.mass,
            self.fixed_mask,
            np.asarray(params.gravity, dtype=np.float64),
            params.node_damping,
        )
        self._collisions()
        self._spring_pass()

        wind = np.asarray(params.wind, dtype=np.float64)
        for group in self.triangle_color_groups:
            apply_aerodynamics_group(self.pos, self.vel, self.force, group, self.triangles, wind, params.wind_drag)

        if self._bending_pass is not None:
            self._bending_pass()

        integrate(
            self.pos,
            self.vel,
            self.force,
            self.jac,
            self.mass,
            self.fixed_mask,
            h,
            params.integration_method is IntegrationMethod.SYMPLECTIC,
        )

    def update(self) -> None:
        """Run ``sub_steps`` sub-steps of ``time_step`` each."""
        if self.is_exploded or self.params.paused:
            return

        for _ in range(self.params.sub_steps):
            self.step(self.params.time_step)

        if not np.isfinite(self.pos).all() or not np.isfinite(self.vel).all():
            self.is_exploded = True
            logger.warning(
                "Simulation became unstable after %d stable updates; stopping",
                self.steps_stable,
            )
        else:
            self.steps_stable += 1
            if self.steps_stable % 500 == 0:
                logger.debug(
                    "Stable for %d updates | max speed %.4f",
                    self.steps_stable,
                    float(np.linalg.norm(self.vel, axis=1).max(initial=0.0)),
                )

    # ---- output ----

    def render_positions(self, base: POINTS) -> POINTS:
        """Copy of ``base`` (local render vertices) with every bound vertex moved."""
        out = np.array(base, dtype=np.float64).reshape(-1, 3)
        if isinstance(self.body, SurfaceBody):
            world = self.pos[self._render_slots]
        else:
            corners = self.pos[self._render_nodes[self._render_elements]]
            world = np.einsum("ek,ekj->ej", self._render_weights, corners)
        if len(self._render_ids):
            out[self._render_ids] = inverse_transform_points(self.body.transform, world)
        return out

    def sync_to_nodes(self) -> None:
        for i, node in enumerate(self.body.nodes):
            node.pos[:] = self.pos[i]
            node.vel[:] = self.vel[i]
            node.force[:] = self.force[i]
            node.jacobian[:3, :3] = self.jac[i]
