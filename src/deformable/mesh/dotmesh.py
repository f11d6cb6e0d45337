# dotmesh.py
"""
Reader for Medit ``.mesh`` tetrahedral meshes (as written by TetGen/gmsh).

Only the sections a volumetric body needs are kept; indices are converted from
the file's 1-based numbering to 0-based.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path

import numpy as np

from deformable.errors import MeshFormatError, MissingMeshError
from deformable.types import FACE, POINTS, TETRA

logger = logging.getLogger(__name__)

# keyword -> (values per row, how many of them are 1-based vertex indices)
SECTIONS = {
    "Vertices": (4, 0),
    "Triangles": (4, 3),
    "Tetrahedra": (5, 4),
    "Corners": (1, 1),
    "Edges": (3, 2),
}
SKIPPED_KEYWORDS = ("MeshVersionFormatted", "Dimension", "End")


@dataclass
class TetMesh:
    vertices: POINTS
    vertex_tags: np.ndarray
    triangles: FACE
    triangle_tags: np.ndarray
    tetrahedra: TETRA
    corners: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int32))
    edges: np.ndarray = field(default_factory=lambda: np.zeros((0, 2), dtype=np.int32))

    def boundary_triangles(self, tag: int = 1) -> FACE:
        return self.triangles[self.triangle_tags == tag]


def _meaningful_lines(text: str):
    dangling_value = False
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or "#" in line:
            continue
        tokens = line.split()
        if tokens[0] in SKIPPED_KEYWORDS:
            # "Dimension" may carry its value on the next line
            dangling_value = len(tokens) == 1 and tokens[0] != "End"
            continue
        if dangling_value:
            dangling_value = False
            if len(tokens) == 1 and tokens[0].isdigit():
                continue
        yield number, line


def parse_dotmesh(text: str) -> TetMesh:
    """Parse the contents of a ``.mesh`` file."""
    rows: dict[str, list[list[float]]] = {name: [] for name in SECTIONS}
    lines = list(_meaningful_lines(text))

    i = 0
    while i < len(lines):
        number, line = lines[i]
        keyword = line.split()[0]
        if keyword not in SECTIONS:
            raise MeshFormatError(f"unexpected section {keyword!r}", number)
        if i + 1 >= len(lines):
            raise MeshFormatError(f"section {keyword} has no count", number)

        count_number, count_line = lines[i + 1]
        try:
            count = int(count_line.split()[0])
        except ValueError as exc:
            raise MeshFormatError(f"bad count {count_line!r} for {keyword}", count_number) from exc
        if count < 0:
            raise MeshFormatError(f"negative count for {keyword}", count_number)

        width, _ = SECTIONS[keyword]
        body = lines[i + 2 : i + 2 + count]
        if len(body) < count:
            raise MeshFormatError(f"{keyword} declares {count} rows but only {len(body)} follow", number)

        for row_number, row in body:
            fields = row.split()
            if len(fields) < width:
                raise MeshFormatError(f"{keyword} row needs {width} values, got {len(fields)}", row_number)
            try:
                rows[keyword].append([float(v) for v in fields[:width]])
            except ValueError as exc:
                raise MeshFormatError(f"non-numeric {keyword} row {row!r}", row_number) from exc
        i += 2 + count

    mesh = _assemble(rows)
    logger.debug(
        "Parsed .mesh: %d vertices, %d triangles, %d tetrahedra",
        len(mesh.vertices),
        len(mesh.triangles),
        len(mesh.tetrahedra),
    )
    return mesh


def _integers(values: np.ndarray, what: str) -> np.ndarray:
    if np.any(values != np.round(values)):
        raise MeshFormatError(f"{what} must be integers")
    return values.astype(np.int64)


def _indices(rows: list[list[float]], columns: int, vertex_count: int, keyword: str) -> np.ndarray:
    data = np.array(rows, dtype=np.float64).reshape(-1, columns)
    idx = _integers(data, f"{keyword} indices") - 1
    if idx.size and (idx.min() < 0 or idx.max() >= vertex_count):
        raise MeshFormatError(f"{keyword} index out of range 1..{vertex_count}")
    return idx.astype(np.int32)


def _assemble(rows: dict[str, list[list[float]]]) -> TetMesh:
    verts = np.array(rows["Vertices"], dtype=np.float64).reshape(-1, 4)
    n = len(verts)

    tris = np.array(rows["Triangles"], dtype=np.float64).reshape(-1, 4)
    tets = np.array(rows["Tetrahedra"], dtype=np.float64).reshape(-1, 5)
    edges = np.array(rows["Edges"], dtype=np.float64).reshape(-1, 3)

    return TetMesh(
        vertices=verts[:, :3].copy(),
        vertex_tags=_integers(verts[:, 3], "Vertices tags").astype(np.int32),
        triangles=_indices(tris[:, :3].tolist(), 3, n, "Triangles"),
        triangle_tags=_integers(tris[:, 3], "Triangles tags").astype(np.int32),
        tetrahedra=_indices(tets[:, :4].tolist(), 4, n, "Tetrahedra"),
        corners=_indices(rows["Corners"], 1, n, "Corners").reshape(-1),
        edges=_indices(edges[:, :2].tolist(), 2, n, "Edges"),
    )


def load_dotmesh(path: str | Path) -> TetMesh:
    path = Path(path)
    if not path.is_file():
        raise MissingMeshError(f"tetrahedral mesh not found: {path}")
    logger.info("Reading tetrahedral mesh %s", path)
    return parse_dotmesh(path.read_text(encoding="utf-8"))


def write_dotmesh(mesh: TetMesh, path: str | Path) -> None:
    """Write ``mesh`` back out with 1-based indices."""
    out = ["MeshVersionFormatted 1", "Dimension 3", "Vertices", str(len(mesh.vertices))]
    out += [f"{x:.9g} {y:.9g} {z:.9g} {t}" for (x, y, z), t in zip(mesh.vertices, mesh.vertex_tags)]
    out += ["Triangles", str(len(mesh.triangles))]
    out += [f"{a + 1} {b + 1} {c + 1} {t}" for (a, b, c), t in zip(mesh.triangles, mesh.triangle_tags)]
    out += ["Tetrahedra", str(len(mesh.tetrahedra))]
    out += [f"{a + 1} {b + 1} {c + 1} {d + 1} 0" for a, b, c, d in mesh.tetrahedra]
    out.append("End")
    Path(path).write_text("\n".join(out) + "\n", encoding="utf-8")
