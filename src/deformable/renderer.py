# renderer.py
import logging
from pathlib import Path

import moderngl
import numpy as np
import pygame

from deformable.types import FACE, POINTS, PROJ, VIEW

logger = logging.getLogger(__name__)

RENDER_MODES = ("Filled", "Wireframe", "Filled+Edges")

# ------------------------
# Matrix helpers
# ------------------------


def perspective(fov_y: float, aspect: float, near: float, far: float) -> PROJ:
    f = 1.0 / np.tan(fov_y * 0.5)
    return np.array(
        [
            [f / aspect, 0.0, 0.0, 0.0],
            [0.0, f, 0.0, 0.0],
            [0.0, 0.0, (far + near) / (near - far), (2.0 * far * near) / (near - far)],
            [0.0, 0.0, -1.0, 0.0],
        ],
        dtype=np.float32,
    ).T


def rotation_x(angle: float) -> PROJ:
    c, s = np.cos(angle), np.sin(angle)
    return np.array(
        [[1, 0, 0, 0], [0, c, -s, 0], [0, s, c, 0], [0, 0, 0, 1]],
        dtype=np.float32,
    ).T


def rotation_y(angle: float) -> PROJ:
    c, s = np.cos(angle), np.sin(angle)
    return np.array(
        [[c, 0, s, 0], [0, 1, 0, 0], [-s, 0, c, 0], [0, 0, 0, 1]],
        dtype=np.float32,
    ).T


def translate(x: float, y: float, z: float) -> PROJ:
    m = np.eye(4, dtype=np.float32)
    m[0, 3] = x
    m[1, 3] = y
    m[2, 3] = z
    return m.T


# ------------------------
# Renderer
# ------------------------


class Renderer:
    """Draws one triangle mesh whose vertex positions change every frame."""

    def __init__(
        self,
        ctx: moderngl.Context,
        faces: FACE,
        num_vertices: int,
        width: int = 800,
        height: int = 600,
        color: tuple[float, float, float] = (0.85, 0.45, 0.35),
    ):
        self.ctx = ctx
        self.ctx.enable(moderngl.DEPTH_TEST)

        self.width = width
        self.height = height
        self.color = color
        self.render_mode = 0

        pygame.font.init()
        self.font = pygame.font.SysFont("monospace", 18)

        base = Path(__file__).parent / "shaders"

        self.prog = self.ctx.program(
            vertex_shader=(base / "mesh.vert").read_text(),
            geometry_shader=(base / "mesh.geom").read_text(),
            fragment_shader=(base / "mesh.frag").read_text(),
        )
        self.ui_prog = self.ctx.program(
            vertex_shader=(base / "ui.vert").read_text(),
            fragment_shader=(base / "ui.frag").read_text(),
        )

        # UI quad (rewritten every frame)
        self.ui_vbo = self.ctx.buffer(reserve=4 * 4 * 4)
        self.ui_vao = self.ctx.vertex_array(
            self.ui_prog,
            [(self.ui_vbo, "2f 2f", "in_pos", "in_uv")],
        )
        self.ui_texture: moderngl.Texture | None = None

        faces = np.asarray(faces, dtype="i4")
        self.num_faces = len(faces)
        self.vbo = self.ctx.buffer(reserve=num_vertices * 3 * 4, dynamic=True)
        self.ebo = self.ctx.buffer(faces.ravel().tobytes())
        self.vao = self.ctx.vertex_array(
            self.prog,
            [(self.vbo, "3f", "in_position")],
            self.ebo,
        )

        logger.info("Renderer initialized: %d triangles, %d vertices", self.num_faces, num_vertices)

    def cycle_render_mode(self) -> str:
        self.render_mode = (self.render_mode + 1) % len(RENDER_MODES)
        return RENDER_MODES[self.render_mode]

    # ------------------------
    # Draw
    # ------------------------

    def draw(
        self,
        positions: POINTS,
        camera_rot: list[float],
        camera_distance: float,
        status: list[str],
    ) -> None:
        self.ctx.clear(0.1, 0.1, 0.15, 1.0)

        self.vbo.orphan()
        self.vbo.write(np.ascontiguousarray(positions, dtype="f4").tobytes())

        view, proj = self._get_matrices(camera_rot, camera_distance)
        self.prog["u_view"].write(view.tobytes())  # type: ignore
        self.prog["u_proj"].write(proj.tobytes())  # type: ignore

        light_world = np.array([5.0, 8.0, 3.0, 1.0], dtype=np.float32)
        light_view = (view.T @ light_world)[:3]

        self.prog["u_light_pos_view"].value = tuple(light_view)  # type: ignore
        self.prog["u_light_color"].value = (1.0, 0.95, 0.9)  # type: ignore
        self.prog["u_base_color"].value = self.color  # type: ignore
        self.prog["u_mode"].value = self.render_mode  # type: ignore

        self.ctx.disable(moderngl.BLEND)
        self.vao.render()

        self._draw_ui_overlay(status)
        pygame.display.flip()

    # ------------------------
    # Camera
    # ------------------------

    def _get_matrices(self, camera_rot: list[float], distance: float) -> tuple[VIEW, PROJ]:
        pitch, yaw = camera_rot
        view = rotation_y(-yaw) @ rotation_x(-pitch) @ translate(0.0, 0.0, -distance)
        proj = perspective(np.radians(60.0), self.width / self.height, 0.05, 100.0)
        return view, proj

    # ------------------------
    # UI Overlay
    # ------------------------

    def _surface_to_texture(self, surface: pygame.Surface) -> moderngl.Texture:
        surface = pygame.transform.flip(surface, False, True)
        data = pygame.image.tobytes(surface, "RGBA", False)

        tex = self.ctx.texture(surface.get_size(), 4, data)
        tex.filter = (moderngl.NEAREST, moderngl.NEAREST)
        return tex

    def _draw_ui_overlay(self, lines: list[str]) -> None:
        if not lines:
            return
        self.ctx.enable(moderngl.BLEND)
        self.ctx.blend_func = moderngl.SRC_ALPHA, moderngl.ONE_MINUS_SRC_ALPHA

        line_h = self.font.get_height()
        w = max(self.font.size(line)[0] for line in lines)
        h = line_h * len(lines)

        surface = pygame.Surface((w, h), pygame.SRCALPHA)
        for row, line in enumerate(lines):
            surface.blit(self.font.render(line, True, (220, 220, 220)), (0, row * line_h))

        if self.ui_texture:
            self.ui_texture.release()
        self.ui_texture = self._surface_to_texture(surface)
        self.ui_texture.use(0)

        # top-left corner in NDC
        margin = 10
        x0 = -1.0 + 2.0 * margin / self.width
        y0 = 1.0 - 2.0 * margin / self.height
        x1 = x0 + 2.0 * w / self.width
        y1 = y0 - 2.0 * h / self.height

        quad = np.array(
            [x0, y0, 0.0, 1.0, x0, y1, 0.0, 0.0, x1, y0, 1.0, 1.0, x1, y1, 1.0, 0.0],
            dtype="f4",
        )
        self.ui_vbo.write(quad.tobytes())
        self.ui_prog["u_texture"] = 0
        self.ui_vao.render(mode=moderngl.TRIANGLE_STRIP)
