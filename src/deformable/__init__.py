"""
Deformable Body Simulation Package

Mass-spring cloth and volumetric soft bodies: mesh-to-graph construction,
spring and dihedral bending forces, penalty collisions and a semi-implicit
integrator running on numba kernels.
"""

from .colliders import BoxCollider, Collider, SphereCollider
from .errors import (
    ConfigError,
    DegenerateElementError,
    DeformableError,
    MeshFormatError,
    MissingMeshError,
    UnmappedVertexError,
)
from .models import Node, Spring, SpringKind
from .params import (
    BendingModel,
    ClothParameters,
    IntegrationMethod,
    SimulationParameters,
    VolumetricParameters,
    load_parameters,
)
from .simulation import Simulation

__version__ = "0.1.0"
__author__ = "Frank1o3"

__all__ = [
    "BendingModel",
    "BoxCollider",
    "ClothParameters",
    "Collider",
    "ConfigError",
    "DegenerateElementError",
    "DeformableError",
    "IntegrationMethod",
    "MeshFormatError",
    "MissingMeshError",
    "Node",
    "SimulationParameters",
    "Simulation",
    "SphereCollider",
    "Spring",
    "SpringKind",
    "UnmappedVertexError",
    "VolumetricParameters",
    "load_parameters",
]
