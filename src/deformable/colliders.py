# colliders.py
"""
Penalty collision volumes.

A collider only answers two questions for a point: is it inside, and which way
does the nearest surface face. The solver turns the normal into the local
stiffness block -k n n^T and folds it into the velocity correction.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from deformable.types import MASK, MAT4, POINTS, VEC3

PENALTY_STIFFNESS = 1_000_000.0

# up, down, right, left, forward, back
PROBE_DIRECTIONS = np.array(
    [
        [0.0, 1.0, 0.0],
        [0.0, -1.0, 0.0],
        [1.0, 0.0, 0.0],
        [-1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0],
        [0.0, 0.0, -1.0],
    ]
)


def penalty_matrix(normal: VEC3, stiffness: float = PENALTY_STIFFNESS) -> MAT4:
    """4x4 matrix with -k n n^T in the upper 3x3 block."""
    m = np.zeros((4, 4))
    n = np.asarray(normal, dtype=np.float64)
    m[:3, :3] = -stiffness * np.outer(n, n)
    return m


class Collider(ABC):
    @abstractmethod
    def contains_many(self, points: POINTS) -> MASK:
        ...

    @abstractmethod
    def normals(self, points: POINTS) -> POINTS:
        ...

    def contains(self, point: VEC3) -> bool:
        return bool(self.contains_many(np.asarray(point, dtype=np.float64).reshape(1, 3))[0])

    def normal(self, point: VEC3) -> VEC3:
        return self.normals(np.asarray(point, dtype=np.float64).reshape(1, 3))[0]

    def penalty_jacobian(self, point: VEC3, stiffness: float = PENALTY_STIFFNESS) -> MAT4:
        return penalty_matrix(self.normal(point), stiffness)


class SphereCollider(Collider):
    def __init__(self, center: VEC3, radius: float) -> None:
        self.center = np.asarray(center, dtype=np.float64)
        self.radius = float(radius)

    def contains_many(self, points: POINTS) -> MASK:
        d = np.linalg.norm(np.asarray(points, dtype=np.float64) - self.center, axis=1)
        return d <= self.radius

    def normals(self, points: POINTS) -> POINTS:
        offset = np.asarray(points, dtype=np.float64) - self.center
        length = np.linalg.norm(offset, axis=1, keepdims=True)
        out = np.zeros_like(offset)
        np.divide(offset, length, out=out, where=length > 1e-12)
        return out

    def __repr__(self) -> str:
        return f"SphereCollider(center={self.center.tolist()}, radius={self.radius})"


class BoxCollider(Collider):
    """Oriented box given by its centre, half extents and a 3x3 rotation."""

    def __init__(self, center: VEC3, half_extents: VEC3, rotation: np.ndarray | None = None) -> None:
        self.center = np.asarray(center, dtype=np.float64)
        self.half_extents = np.asarray(half_extents, dtype=np.float64)
        self.rotation = np.eye(3) if rotation is None else np.asarray(rotation, dtype=np.float64)
        self.face_points, self.face_normals = self._probe_faces()

    @classmethod
    def from_bounds(cls, lower: VEC3, upper: VEC3) -> BoxCollider:
        lower = np.asarray(lower, dtype=np.float64)
        upper = np.asarray(upper, dtype=np.float64)
        return cls((lower + upper) / 2.0, (upper - lower) / 2.0)

    def _to_local(self, points: POINTS) -> POINTS:
        return (np.asarray(points, dtype=np.float64) - self.center) @ self.rotation

    def _probe_faces(self) -> tuple[POINTS, POINTS]:
        """Cast a ray towards the box from outside along each probe direction."""
        reach = 2.0 * float(np.linalg.norm(self.half_extents)) + 1.0
        points = np.empty((len(PROBE_DIRECTIONS), 3))
        normals = np.empty((len(PROBE_DIRECTIONS), 3))
        for f, d in enumerate(PROBE_DIRECTIONS):
            origin = self.center + reach * d
            o = self._to_local(origin[None, :])[0]
            ray = self.rotation.T @ -d

            t_near, axis = -np.inf, 0
            for k in range(3):
                if abs(ray[k]) < 1e-12:
                    continue
                t1 = (-self.half_extents[k] - o[k]) / ray[k]
                t2 = (self.half_extents[k] - o[k]) / ray[k]
                if min(t1, t2) > t_near:
                    t_near, axis = min(t1, t2), k

            local_normal = np.zeros(3)
            local_normal[axis] = -np.sign(ray[axis])
            points[f] = origin - t_near * d
            normals[f] = self.rotation @ local_normal
        return points, normals

    def contains_many(self, points: POINTS) -> MASK:
        local = self._to_local(points)
        return np.all(np.abs(local) <= self.half_extents, axis=1)

    def normals(self, points: POINTS) -> POINTS:
        points = np.asarray(points, dtype=np.float64)
        # (N, 6) signed distance of each face plane above the point
        gaps = np.einsum("fk,nfk->nf", self.face_normals, self.face_points[None, :, :] - points[:, None, :])
        return self.face_normals[np.argmin(gaps, axis=1)]

    def __repr__(self) -> str:
        return f"BoxCollider(center={self.center.tolist()}, half_extents={self.half_extents.tolist()})"
