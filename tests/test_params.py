import pytest

from deformable.errors import ConfigError
from deformable.params import (
    BendingModel,
    ClothParameters,
    IntegrationMethod,
    VolumetricParameters,
    load_parameters,
    parameters_from_dict,
    save_parameters,
)


def test_defaults():
    p = ClothParameters()
    assert p.integration_method is IntegrationMethod.SYMPLECTIC
    assert p.time_step == 0.002
    assert p.sub_steps == 5
    assert p.gravity == (0.0, -9.81, 0.0)
    assert p.node_damping == 0.5
    assert p.spring_damping == 0.0075
    assert p.wind_drag == 0.1
    assert p.penalty_stiffness == 1e6
    assert p.node_mass == 1.0
    assert p.structural_stiffness == 1600.0
    assert p.bending_stiffness == 160.0
    assert p.bending_model is BendingModel.EXTRA_SPRINGS

    v = VolumetricParameters()
    assert v.density == 1.0
    assert v.elastic_energy_density == 3200.0


def test_from_dict_converts_strings_and_lists():
    p = parameters_from_dict(
        {"integration_method": "explicit", "bending_model": "dihedral", "wind": [1, 0, 0]},
        "cloth",
    )
    assert p.integration_method is IntegrationMethod.EXPLICIT
    assert p.bending_model is BendingModel.DIHEDRAL
    assert p.wind == (1.0, 0.0, 0.0)


def test_unknown_key_raises():
    with pytest.raises(ConfigError):
        parameters_from_dict({"density": 2.0}, "cloth")


def test_unknown_kind_raises():
    with pytest.raises(ConfigError):
        parameters_from_dict({}, "rope")


@pytest.mark.parametrize(
    "data",
    [
        {"integration_method": "verlet"},
        {"time_step": 0.0},
        {"sub_steps": 0},
        {"gravity": [0, 1]},
        {"node_mass": -1.0},
    ],
)
def test_invalid_values_raise(data):
    with pytest.raises(ConfigError):
        parameters_from_dict(data, "cloth")


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_parameters(tmp_path / "missing.yaml")


def test_yaml_round_trip(tmp_path):
    original = VolumetricParameters(density=2.5, sub_steps=3, gravity=(0.0, -1.0, 0.0), paused=True)
    path = tmp_path / "params.yaml"
    save_parameters(original, path)
    assert load_parameters(path, "volumetric") == original


def test_yaml_nested_under_kind(tmp_path):
    path = tmp_path / "scene.yaml"
    path.write_text("cloth:\n  node_mass: 0.5\n  bending_model: dihedral\n")
    p = load_parameters(path, "cloth")
    assert p.node_mass == 0.5
    assert p.bending_model is BendingModel.DIHEDRAL


def test_yaml_scientific_notation_becomes_float(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text("penalty_stiffness: 1e6\nweld_tolerance: 1e-6\nsub_steps: '4'\n")
    p = load_parameters(path, "cloth")
    assert isinstance(p.penalty_stiffness, float)
    assert p.penalty_stiffness == 1e6
    assert p.weld_tolerance == pytest.approx(1e-6)
    assert p.sub_steps == 4


def test_yaml_non_numeric_value_raises(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text("time_step: abc\n")
    with pytest.raises(ConfigError):
        load_parameters(path, "cloth")


@pytest.mark.parametrize("key", ["node_damping", "structural_stiffness", "node_mass"])
def test_non_numeric_fields_raise(key):
    with pytest.raises(ConfigError):
        parameters_from_dict({key: "stiff"}, "cloth")


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_parameters(path, "cloth") == ClothParameters()
