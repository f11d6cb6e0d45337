# simulation.py
"""
Simulation context: builds a body, owns its solver and hands out render
positions after every fixed update.
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
from pathlib import Path

import numpy as np

from deformable.colliders import Collider
from deformable.geometry import transform_points
from deformable.mesh.dotmesh import TetMesh, load_dotmesh
from deformable.mesh.surface import build_surface_body
from deformable.mesh.volumetric import build_volumetric_body
from deformable.models import SurfaceBody, VolumetricBody
from deformable.params import ClothParameters, VolumetricParameters
from deformable.solver_numpy import MassSpringSolver
from deformable.types import FACE, MAT4, POINTS

logger = logging.getLogger(__name__)


class Simulation:
    def __init__(
        self,
        body: SurfaceBody | VolumetricBody,
        solver: MassSpringSolver,
        vertices: POINTS,
        faces: FACE,
    ) -> None:
        self.body = body
        self.solver = solver
        self.params = solver.params
        self.base_vertices = np.array(vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(faces, dtype=np.int32).reshape(-1, 3)
        self.updates = 0

    @classmethod
    def cloth(
        cls,
        vertices: POINTS,
        triangles: FACE,
        params: ClothParameters | None = None,
        fixers: Iterable[Collider] = (),
        colliders: Iterable[Collider] = (),
        transform: MAT4 | None = None,
    ) -> Simulation:
        params = ClothParameters() if params is None else params
        body = build_surface_body(vertices, triangles, params, fixers, transform)
        return cls(body, MassSpringSolver(body, params, colliders), vertices, triangles)

    @classmethod
    def volumetric(
        cls,
        tet_mesh: TetMesh | str | Path,
        render_vertices: POINTS,
        render_triangles: FACE,
        params: VolumetricParameters | None = None,
        fixers: Iterable[Collider] = (),
        colliders: Iterable[Collider] = (),
        transform: MAT4 | None = None,
    ) -> Simulation:
        """Volumetric body from a parsed :class:`TetMesh` or a ``.mesh`` path.

        A missing ``.mesh`` file raises :class:`MissingMeshError` and no body
        is built.
        """
        params = VolumetricParameters() if params is None else params
        if not isinstance(tet_mesh, TetMesh):
            tet_mesh = load_dotmesh(tet_mesh)
        body = build_volumetric_body(tet_mesh, render_vertices, render_triangles, params, fixers, transform)
        return cls(body, MassSpringSolver(body, params, colliders), render_vertices, render_triangles)

    @property
    def is_exploded(self) -> bool:
        return self.solver.is_exploded

    @property
    def paused(self) -> bool:
        return self.params.paused

    @paused.setter
    def paused(self, value: bool) -> None:
        self.params.paused = value

    def set_wind(self, wind: tuple[float, float, float]) -> None:
        self.params.wind = tuple(float(c) for c in wind)  # type: ignore[assignment]

    def fixed_update(self) -> None:
        """One fixed update: ``sub_steps`` solver sub-steps unless paused."""
        if self.params.paused or self.solver.is_exploded:
            return
        self.solver.update()
        self.updates += 1

    def mesh_vertices(self) -> POINTS:
        """Render vertices in the mesh's local frame."""
        return self.solver.render_positions(self.base_vertices)

    def world_vertices(self) -> POINTS:
        return transform_points(self.body.transform, self.mesh_vertices())
