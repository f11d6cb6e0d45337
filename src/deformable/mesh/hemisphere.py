# hemisphere.py
"""
UV hemisphere closed by a flat bottom cap, used as the render mesh of the
volumetric demo.
"""

import math

import numpy as np

from deformable.types import GEN_MESH, VEC3


def generate_hemisphere(
    radius: float = 0.5,
    rings: int = 8,
    segments: int = 16,
    center: VEC3 = (0.0, 0.0, 0.0),
) -> GEN_MESH:
    """
    Generate a closed hemisphere with its dome along +Y.

    Args:
        radius: Hemisphere radius
        rings: Number of latitude rings below the apex
        segments: Number of longitude segments
        center: Centre of the flat base

    Returns:
        (vertices, faces) with outward winding
    """
    cx, cy, cz = (float(c) for c in center)
    vertices: list[list[float]] = [[cx, cy + radius, cz]]  # apex

    for r in range(1, rings + 1):
        # from the apex (0) down to the equator (pi/2)
        phi = (math.pi / 2) * (r / rings)
        y = radius * math.cos(phi)
        ring_radius = radius * math.sin(phi)
        for s in range(segments):
            theta = (2 * math.pi * s) / segments
            vertices.append(
                [cx + ring_radius * math.cos(theta), cy + y, cz + ring_radius * math.sin(theta)]
            )

    center_idx = len(vertices)
    vertices.append([cx, cy, cz])

    faces: list[list[int]] = []
    # Top cap
    for s in range(segments):
        faces.append([0, 1 + (s + 1) % segments, 1 + s])

    # Quads between rings
    for r in range(1, rings):
        curr = 1 + (r - 1) * segments
        nxt = 1 + r * segments
        for s in range(segments):
            i1 = curr + s
            i2 = curr + (s + 1) % segments
            i3 = nxt + s
            i4 = nxt + (s + 1) % segments
            faces.append([i1, i2, i3])
            faces.append([i2, i4, i3])

    # Bottom cap
    bottom = 1 + (rings - 1) * segments
    for s in range(segments):
        faces.append([bottom + s, bottom + (s + 1) % segments, center_idx])

    return np.array(vertices, dtype=np.float64), np.array(faces, dtype=np.int32)
