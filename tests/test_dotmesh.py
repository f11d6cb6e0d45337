import numpy as np
import pytest

from deformable.errors import MeshFormatError, MissingMeshError
from deformable.mesh.dotmesh import load_dotmesh, parse_dotmesh, write_dotmesh
from deformable.mesh.shapes import make_box_tetrahedra

SINGLE_TET = """MeshVersionFormatted 1
Dimension
3
# a single tetrahedron
Vertices
4
0 0 0 1
1 0 0 1
0 1 0 1
0 0 1 1

Triangles
2
1 2 3 1
1 2 4 0
Tetrahedra
1
1 2 3 4 0
Corners
1
1
Edges
1
1 2 0
End
"""


def test_parse_single_tetrahedron():
    mesh = parse_dotmesh(SINGLE_TET)
    assert mesh.vertices.shape == (4, 3)
    assert np.allclose(mesh.vertices[1], [1.0, 0.0, 0.0])
    assert list(mesh.vertex_tags) == [1, 1, 1, 1]
    assert mesh.triangles.tolist() == [[0, 1, 2], [0, 1, 3]]
    assert list(mesh.triangle_tags) == [1, 0]
    assert mesh.tetrahedra.tolist() == [[0, 1, 2, 3]]
    assert mesh.corners.tolist() == [0]
    assert mesh.edges.tolist() == [[0, 1]]


def test_boundary_triangles_keep_tag_one():
    mesh = parse_dotmesh(SINGLE_TET)
    assert mesh.boundary_triangles().tolist() == [[0, 1, 2]]


def test_truncated_section_raises():
    text = "Vertices\n4\n0 0 0 1\n1 0 0 1\n"
    with pytest.raises(MeshFormatError):
        parse_dotmesh(text)


def test_missing_count_raises():
    with pytest.raises(MeshFormatError):
        parse_dotmesh("Vertices\n")


def test_non_numeric_row_reports_line():
    text = "Vertices\n2\n0 0 0 1\n0 x 0 1\n"
    with pytest.raises(MeshFormatError) as info:
        parse_dotmesh(text)
    assert info.value.line_number == 4
    assert "line 4" in str(info.value)


def test_short_row_raises():
    with pytest.raises(MeshFormatError):
        parse_dotmesh("Vertices\n1\n0 0 0\n")


def test_out_of_range_index_raises():
    text = "Vertices\n1\n0 0 0 1\nTetrahedra\n1\n1 2 3 4 0\n"
    with pytest.raises(MeshFormatError):
        parse_dotmesh(text)


@pytest.mark.parametrize(
    "text",
    [
        "Vertices\n1\n0 0 0 1.7\n",
        "Vertices\n3\n0 0 0 1\n1 0 0 1\n0 1 0 1\nTriangles\n1\n1 2 3 0.5\n",
    ],
)
def test_fractional_tag_raises(text):
    with pytest.raises(MeshFormatError):
        parse_dotmesh(text)


def test_unknown_section_raises():
    with pytest.raises(MeshFormatError):
        parse_dotmesh("Quadrilaterals\n0\n")


def test_missing_file_raises(tmp_path):
    with pytest.raises(MissingMeshError):
        load_dotmesh(tmp_path / "nope.mesh")


def test_written_mesh_reads_back(tmp_path):
    box = make_box_tetrahedra(divisions=(2, 1, 1))
    path = tmp_path / "box.mesh"
    write_dotmesh(box, path)
    mesh = load_dotmesh(path)
    assert np.allclose(mesh.vertices, box.vertices)
    assert np.array_equal(mesh.tetrahedra, box.tetrahedra)
    assert np.array_equal(mesh.triangles, box.triangles)
