import numpy as np
import pytest

from deformable.errors import DegenerateElementError
from deformable.models import Node, Spring, SpringKind, SurfaceTriangle, VolumeElement
from deformable.params import ClothParameters, VolumetricParameters


def make_spring(kind=SpringKind.STRUCTURAL, volume=0.0):
    a = Node(0, (1.0, 0.0, 0.0))
    b = Node(1, (0.0, 0.0, 0.0))
    return Spring(a, b, kind, volume)


def test_node_ids_have_no_duplicates():
    node = Node(3, (0.0, 0.0, 0.0))
    node.add_id(5)
    node.add_id(3)
    node.add_id(5)
    assert node.ids == [3, 5]


def test_nodes_compare_by_position():
    assert Node(0, (1.0, 2.0, 3.0)) == Node(9, (1.0, 2.0, 3.0))
    assert Node(0, (1.0, 2.0, 3.0)) != Node(0, (1.0, 2.0, 3.5))
    assert len({Node(0, (1.0, 2.0, 3.0)), Node(1, (1.0, 2.0, 3.0))}) == 1


def test_node_reset_clears_force_and_jacobian():
    node = Node(0, (0.0, 0.0, 0.0))
    node.add_force(np.array([1.0, 2.0, 3.0]))
    node.jacobian[1, 1] = -5.0
    node.reset()
    assert not node.force.any()
    assert not node.jacobian.any()


def test_spring_equality_is_symmetric():
    s = make_spring()
    flipped = Spring(s.b, s.a)
    assert s == flipped
    assert hash(s) == hash(flipped)
    assert s.rest_length == pytest.approx(1.0)


def test_stretched_spring_pulls_back_with_hooke_force():
    s = make_spring()
    s.a.pos[:] = (1.2, 0.0, 0.0)
    f = s.compute_force(ClothParameters(spring_damping=0.0))
    assert np.allclose(f, [-320.0, 0.0, 0.0])
    assert np.linalg.norm(f) == pytest.approx(320.0)


def test_spring_forces_are_opposite():
    s = make_spring()
    s.a.pos[:] = (1.3, 0.2, -0.1)
    s.a.vel[:] = (0.5, 0.0, 0.0)
    s.apply(ClothParameters())
    assert np.array_equal(s.a.force, -s.b.force)


def test_bending_spring_uses_bending_stiffness():
    s = make_spring(SpringKind.BENDING)
    s.a.pos[:] = (1.5, 0.0, 0.0)
    f = s.compute_force(ClothParameters(spring_damping=0.0, bending_stiffness=10.0))
    assert np.allclose(f, [-5.0, 0.0, 0.0])


def test_volume_spring_force():
    s = make_spring(SpringKind.VOLUME, volume=0.6)
    s.a.pos[:] = (1.2, 0.0, 0.0)
    f = s.compute_force(VolumetricParameters(elastic_energy_density=3200.0))
    assert np.allclose(f, [-384.0, 0.0, 0.0])


def test_zero_length_spring_gives_no_force():
    s = make_spring()
    s.a.pos[:] = s.b.pos
    assert not s.compute_force(ClothParameters()).any()


def test_surface_triangle_neighbour_records_rest_angle():
    n = [Node(i, p) for i, p in enumerate([(0.0, 0, 0), (1.0, 0, 0), (0.0, 1, 0), (0.0, 0, 1)])]
    flat = SurfaceTriangle(n[0], n[1], n[2])
    wall = SurfaceTriangle(n[0], n[3], n[1])
    assert flat.area == pytest.approx(0.5)
    assert np.allclose(flat.normal, [0.0, 0.0, 1.0])
    assert flat.add_neighbour(wall) == pytest.approx(np.pi / 2)
    assert flat.neighbours[wall] == pytest.approx(np.pi / 2)
    assert flat.opposite(n[0], n[1]) is n[2]


def test_volume_element_distributes_mass():
    nodes = [Node(None, p) for p in [(0.0, 0, 0), (1.0, 0, 0), (0.0, 1, 0), (0.0, 0, 1)]]
    element = VolumeElement(*nodes, density=6.0)
    assert element.volume == pytest.approx(1.0 / 6.0)
    assert element.mass == pytest.approx(1.0)
    assert [n.mass for n in nodes] == pytest.approx([0.25] * 4)


def test_volume_element_contains_and_interpolates():
    nodes = [Node(None, p) for p in [(0.0, 0, 0), (1.0, 0, 0), (0.0, 1, 0), (0.0, 0, 1)]]
    element = VolumeElement(*nodes)
    point = np.array([0.25, 0.25, 0.25])
    assert element.contains(point)
    assert not element.contains(np.array([1.0, 1.0, 1.0]))
    assert np.allclose(element.interpolate(element.weights(point)), point)


def test_degenerate_volume_element_raises():
    nodes = [Node(None, p) for p in [(0.0, 0, 0), (1.0, 0, 0), (0.0, 1, 0), (1.0, 1, 0)]]
    with pytest.raises(DegenerateElementError):
        VolumeElement(*nodes)
