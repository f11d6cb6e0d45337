import numpy as np
import pytest

from deformable.colliders import BoxCollider
from deformable.errors import DegenerateElementError, MissingMeshError, UnmappedVertexError
from deformable.mesh.dotmesh import TetMesh
from deformable.mesh.shapes import make_box_surface, make_box_tetrahedra
from deformable.mesh.volumetric import build_volumetric_body, load_volumetric_body, referenced_vertices
from deformable.models import SpringKind
from deformable.params import VolumetricParameters


def single_tet(triangle_tags=(1, 0)):
    return TetMesh(
        vertices=np.array([[0.0, 0, 0], [1.0, 0, 0], [0.0, 1, 0], [0.0, 0, 1]]),
        vertex_tags=np.ones(4, dtype=np.int32),
        triangles=np.array([[0, 1, 2], [0, 1, 3]], dtype=np.int32),
        triangle_tags=np.array(triangle_tags, dtype=np.int32),
        tetrahedra=np.array([[0, 1, 2, 3]], dtype=np.int32),
    )


def test_box_tetrahedra_fill_the_box():
    mesh = make_box_tetrahedra(divisions=(2, 1, 1))
    body = build_volumetric_body(mesh, np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int32), VolumetricParameters())
    assert len(body.nodes) == 12
    assert len(body.elements) == 12
    assert sum(e.volume for e in body.elements) == pytest.approx(1.0)
    assert sum(n.mass for n in body.nodes) == pytest.approx(1.0)


def test_spring_volumes_add_up_to_the_body_volume():
    body = build_volumetric_body(
        make_box_tetrahedra(), np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int32), VolumetricParameters(density=2.0)
    )
    assert all(s.kind is SpringKind.VOLUME for s in body.springs)
    assert sum(s.volume for s in body.springs) == pytest.approx(1.0)
    assert sum(n.mass for n in body.nodes) == pytest.approx(2.0)
    pairs = {frozenset((s.a.index, s.b.index)) for s in body.springs}
    assert len(pairs) == len(body.springs)


def test_only_tagged_triangles_form_the_surface():
    body = build_volumetric_body(single_tet(), np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int32), VolumetricParameters())
    assert body.surface.tolist() == [[0, 1, 2]]


def test_render_vertices_are_bound_with_weights():
    vertices, faces = make_box_surface(half_extents=(0.25, 0.25, 0.25))
    body = build_volumetric_body(make_box_tetrahedra(), vertices, faces, VolumetricParameters())
    ids, elements, weights = body.render_map()
    assert sorted(ids.tolist()) == list(range(24))
    assert np.allclose(weights.sum(axis=1), 1.0)
    for vid, e, w in zip(ids, elements, weights):
        assert np.allclose(body.elements[e].interpolate(w), vertices[vid])


def test_coincident_render_vertices_share_a_binding():
    vertices, faces = make_box_surface(half_extents=(0.25, 0.25, 0.25))
    body = build_volumetric_body(make_box_tetrahedra(), vertices, faces, VolumetricParameters())
    bindings = [b for e in body.elements for b in e.bindings.values()]
    assert len(bindings) == 8
    assert all(len(b.ids) == 3 for b in bindings)


def test_render_transform_is_applied_before_binding():
    vertices, faces = make_box_surface(half_extents=(0.25, 0.25, 0.25))
    lift = np.eye(4)
    lift[1, 3] = 10.0
    mesh = make_box_tetrahedra((-0.5, 9.5, -0.5), (0.5, 10.5, 0.5))
    body = build_volumetric_body(mesh, vertices, faces, VolumetricParameters(), transform=lift)
    assert len(body.render_map()[0]) == 24


def test_unmapped_render_vertex_raises():
    vertices = np.array([[5.0, 5.0, 5.0], [0.1, 0.1, 0.1], [0.2, 0.1, 0.1]])
    with pytest.raises(UnmappedVertexError) as info:
        build_volumetric_body(single_tet(), vertices, np.array([[0, 1, 2]]), VolumetricParameters())
    assert info.value.vertex_ids == [0]


def test_unreferenced_render_vertex_is_ignored():
    vertices = np.array([[0.1, 0.1, 0.1], [0.2, 0.1, 0.1], [0.1, 0.2, 0.1], [9.0, 9.0, 9.0]])
    body = build_volumetric_body(single_tet(), vertices, np.array([[0, 1, 2]]), VolumetricParameters())
    assert sorted(body.render_map()[0].tolist()) == [0, 1, 2]
    assert body.vertex_count == 4


def test_degenerate_tetrahedron_raises():
    mesh = single_tet()
    mesh.vertices[3] = [1.0, 1.0, 0.0]
    with pytest.raises(DegenerateElementError):
        build_volumetric_body(mesh, np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int32), VolumetricParameters())


def test_fixers_pin_tet_vertices():
    floor = BoxCollider.from_bounds((-1.0, -1.0, -1.0), (1.0, -0.4, 1.0))
    body = build_volumetric_body(
        make_box_tetrahedra(), np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int32), VolumetricParameters(), fixers=[floor]
    )
    assert sum(n.is_fixed for n in body.nodes) == 4
    assert all(n.pos[1] < 0 for n in body.nodes if n.is_fixed)


def test_referenced_vertices_follow_first_appearance():
    assert referenced_vertices(np.array([[2, 0, 1], [1, 3, 0]])).tolist() == [2, 0, 1, 3]


def test_missing_mesh_file_raises(tmp_path):
    with pytest.raises(MissingMeshError):
        load_volumetric_body(tmp_path / "body.mesh", np.zeros((0, 3)), np.zeros((0, 3)), VolumetricParameters())
