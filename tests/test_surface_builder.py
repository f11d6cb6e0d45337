import numpy as np
import pytest

from deformable.colliders import SphereCollider
from deformable.mesh.shapes import make_box_surface, make_grid
from deformable.mesh.surface import build_surface_body
from deformable.models import DihedralBending, SpringBending, SpringKind
from deformable.params import BendingModel, ClothParameters


def node_with_id(body, vid):
    return next(n for n in body.nodes if vid in n.ids)


def test_quad_has_one_spring_per_edge():
    vertices, faces = make_grid(rows=1, cols=1)
    body = build_surface_body(vertices, faces, ClothParameters())
    assert len(body.nodes) == 4
    assert len(body.triangles) == 2
    assert len(body.springs) == 5
    assert all(s.kind is SpringKind.STRUCTURAL for s in body.springs)


def test_structural_rest_lengths_match_mesh_edges():
    vertices, faces = make_grid(width=3.0, depth=1.0, rows=3, cols=4)
    body = build_surface_body(vertices, faces, ClothParameters())
    edges = set()
    for tri in faces:
        for a, b in ((tri[0], tri[1]), (tri[0], tri[2]), (tri[1], tri[2])):
            edges.add((min(a, b), max(a, b)))
    assert len(body.springs) == len(edges)
    expected = sorted(np.linalg.norm(vertices[a] - vertices[b]) for a, b in edges)
    assert np.allclose(sorted(s.rest_length for s in body.springs), expected)


def test_extra_spring_joins_opposite_vertices():
    vertices, faces = make_grid(rows=1, cols=1)
    body = build_surface_body(vertices, faces, ClothParameters())
    assert isinstance(body.bending, SpringBending)
    (spring,) = body.bending.springs
    assert spring.kind is SpringKind.BENDING
    assert {spring.a.ids[0], spring.b.ids[0]} == {0, 3}
    assert spring.rest_length == pytest.approx(2.0 * np.sqrt(2.0))


def test_dihedral_model_builds_hinges_only():
    vertices, faces = make_grid(rows=1, cols=1)
    body = build_surface_body(vertices, faces, ClothParameters(bending_model=BendingModel.DIHEDRAL))
    assert isinstance(body.bending, DihedralBending)
    assert not isinstance(body.bending, SpringBending)
    assert len(body.bending.hinges) == 2
    first, second = body.triangles
    assert first.neighbours == {second: pytest.approx(0.0, abs=1e-6)}
    assert second.neighbours == {first: pytest.approx(0.0, abs=1e-6)}
    hinge = body.bending.hinges[0]
    assert hinge.triangle is first and hinge.neighbour is second
    assert {hinge.x0.ids[0], hinge.x3.ids[0]} == {0, 3}
    assert all(s.kind is SpringKind.STRUCTURAL for s in body.springs)


def test_folded_hinge_records_rest_angle():
    vertices = np.array([[0.0, 0, 0], [1.0, 0, 0], [0.5, 1, 0], [0.5, 0, 1]])
    faces = np.array([[0, 1, 2], [1, 0, 3]])
    body = build_surface_body(vertices, faces, ClothParameters(bending_model="dihedral"))
    assert body.bending.hinges[0].theta0 == pytest.approx(np.pi / 2)


def spring_pair(spring):
    return frozenset((spring.a.index, spring.b.index))


def test_bending_springs_never_double_a_structural_pair():
    vertices = np.array([[0.0, 0, 0], [1.0, 0, 0], [0.0, 1, 0], [0.0, 0, 1]])
    faces = np.array([[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]])
    body = build_surface_body(vertices, faces, ClothParameters())
    structural = {spring_pair(s) for s in body.springs}
    assert len(structural) == 6
    # every opposite-vertex pair of a tetrahedron is also one of its edges
    assert body.bending.springs == []
    assert not structural & {spring_pair(s) for s in body.bending.springs}


def test_box_bending_pairs_are_disjoint_from_structural():
    vertices, faces = make_box_surface()
    body = build_surface_body(vertices, faces, ClothParameters())
    structural = [spring_pair(s) for s in body.springs]
    bending = [spring_pair(s) for s in body.bending.springs]
    assert len(set(structural + bending)) == len(structural) + len(bending)


def test_split_vertices_are_welded():
    vertices, faces = make_box_surface()
    assert len(vertices) == 24
    body = build_surface_body(vertices, faces, ClothParameters())
    assert len(body.nodes) == 8
    assert all(len(n.ids) == 3 for n in body.nodes)
    # 12 box edges plus one diagonal per face
    assert len(body.springs) == 18
    ids, slots = body.render_map()
    assert sorted(ids.tolist()) == list(range(24))


def test_fixers_pin_nodes():
    vertices, faces = make_grid(rows=2, cols=2)
    corner = SphereCollider(vertices[0], 0.01)
    body = build_surface_body(vertices, faces, ClothParameters(), fixers=[corner])
    assert node_with_id(body, 0).is_fixed
    assert sum(n.is_fixed for n in body.nodes) == 1


def test_nodes_carry_mass_and_params():
    vertices, faces = make_grid(rows=1, cols=1)
    params = ClothParameters(node_mass=0.25)
    body = build_surface_body(vertices, faces, params)
    assert all(n.mass == 0.25 and n.params is params for n in body.nodes)
    assert [n.index for n in body.nodes] == list(range(4))


def test_transform_moves_nodes_to_world():
    vertices, faces = make_grid(rows=1, cols=1)
    lift = np.eye(4)
    lift[1, 3] = 2.0
    body = build_surface_body(vertices, faces, ClothParameters(), transform=lift)
    assert np.allclose([n.pos[1] for n in body.nodes], 2.0)
    assert body.transform is not None


def test_collapsed_triangle_is_skipped():
    vertices = np.array([[0.0, 0, 0], [1.0, 0, 0], [1e-9, 0, 0], [0.0, 1, 0]])
    faces = np.array([[0, 1, 2], [0, 1, 3]])
    body = build_surface_body(vertices, faces, ClothParameters())
    assert len(body.triangles) == 1
    assert len(body.springs) == 3
    assert node_with_id(body, 2).ids == [0, 2]


def test_bad_index_raises():
    vertices, _ = make_grid(rows=1, cols=1)
    with pytest.raises(IndexError):
        build_surface_body(vertices, np.array([[0, 1, 7]]), ClothParameters())
