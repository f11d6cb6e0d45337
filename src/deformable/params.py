# params.py
"""
Simulation parameters.

Plain dataclasses with the defaults of the reference scenes. ``load_parameters``
reads the same fields from a YAML file; keys match the attribute names.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
import logging
import math
from pathlib import Path
from typing import Any

import yaml

from deformable.errors import ConfigError

logger = logging.getLogger(__name__)


class IntegrationMethod(str, Enum):
    EXPLICIT = "explicit"
    SYMPLECTIC = "symplectic"


class BendingModel(str, Enum):
    EXTRA_SPRINGS = "extra_springs"
    DIHEDRAL = "dihedral"


@dataclass
class SimulationParameters:
    integration_method: IntegrationMethod = IntegrationMethod.SYMPLECTIC
    time_step: float = 0.002
    sub_steps: int = 5
    gravity: tuple[float, float, float] = (0.0, -9.81, 0.0)

    node_damping: float = 0.5
    spring_damping: float = 0.0075

    wind: tuple[float, float, float] = (0.0, 0.0, 0.0)
    wind_drag: float = 0.1

    # Single penalty constant k shared by every collider: J = -k n n^T
    penalty_stiffness: float = 1_000_000.0

    # Positions closer than this collapse into one node (topology field)
    weld_tolerance: float = 1e-6

    paused: bool = False

    def __post_init__(self) -> None:
        try:
            self.integration_method = IntegrationMethod(self.integration_method)
        except ValueError as exc:
            raise ConfigError(f"unknown integration method {self.integration_method!r}") from exc
        self.gravity = _vector(self.gravity, "gravity")
        self.wind = _vector(self.wind, "wind")
        # YAML 1.1 reads "1e6" as a string; every numeric field goes through here
        for f in fields(self):
            if f.type in ("float", "int"):
                setattr(self, f.name, _number(getattr(self, f.name), f.name, float if f.type == "float" else int))
        if self.time_step <= 0.0:
            raise ConfigError(f"time_step must be positive, got {self.time_step}")
        if self.sub_steps < 1:
            raise ConfigError(f"sub_steps must be at least 1, got {self.sub_steps}")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
            elif isinstance(value, tuple):
                data[key] = list(value)
        return data


@dataclass
class ClothParameters(SimulationParameters):
    node_mass: float = 1.0
    structural_stiffness: float = 1600.0
    bending_stiffness: float = 160.0
    bending_model: BendingModel = field(default=BendingModel.EXTRA_SPRINGS)

    def __post_init__(self) -> None:
        super().__post_init__()
        try:
            self.bending_model = BendingModel(self.bending_model)
        except ValueError as exc:
            raise ConfigError(f"unknown bending model {self.bending_model!r}") from exc
        if self.node_mass <= 0.0:
            raise ConfigError(f"node_mass must be positive, got {self.node_mass}")


@dataclass
class VolumetricParameters(SimulationParameters):
    # Only read while the body is built
    density: float = 1.0
    elastic_energy_density: float = 3200.0

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.density <= 0.0:
            raise ConfigError(f"density must be positive, got {self.density}")


PARAMETER_KINDS: dict[str, type[SimulationParameters]] = {
    "cloth": ClothParameters,
    "volumetric": VolumetricParameters,
}


def _vector(value: Any, name: str) -> tuple[float, float, float]:
    try:
        x, y, z = (float(c) for c in value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a 3-vector, got {value!r}") from exc
    return (x, y, z)


def _number(value: Any, name: str, kind: type) -> Any:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise ConfigError(f"{name} must be finite, got {value!r}")
    return int(number) if kind is int else number


def parameters_from_dict(data: dict[str, Any], kind: str = "cloth") -> SimulationParameters:
    """Build the parameter dataclass for ``kind`` from a plain mapping."""
    try:
        cls = PARAMETER_KINDS[kind]
    except KeyError as exc:
        raise ConfigError(f"unknown body kind {kind!r}; expected one of {sorted(PARAMETER_KINDS)}") from exc

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown {kind} parameters: {', '.join(unknown)}")
    return cls(**data)


def load_parameters(path: str | Path, kind: str = "cloth") -> SimulationParameters:
    """Read parameters from a YAML file.

    The file may either hold the fields at top level or nest them under a key
    named after the body kind (``cloth:`` / ``volumetric:``).
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"parameter file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    if kind in data and isinstance(data[kind], dict):
        data = data[kind]

    params = parameters_from_dict(data, kind)
    logger.info("Loaded %s parameters from %s", kind, path)
    return params


def save_parameters(params: SimulationParameters, path: str | Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(params.to_dict(), f, sort_keys=False)
