"""
Exceptions raised while building or configuring a deformable body.

Construction errors always propagate to the caller: a body that failed to
build is discarded instead of being simulated in a half-initialised state.
"""


class DeformableError(Exception):
    """Base class for every error raised by this package."""


class MeshFormatError(DeformableError):
    """A tetrahedral mesh description is malformed or truncated."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class MissingMeshError(DeformableError):
    """The tetrahedral mesh asset required by a volumetric body is missing."""


class DegenerateElementError(DeformableError):
    """A tetrahedron has (near) zero volume and cannot carry barycentric weights."""


class UnmappedVertexError(DeformableError):
    """Render vertices that no tetrahedron encloses."""

    def __init__(self, vertex_ids: list[int]) -> None:
        self.vertex_ids = vertex_ids
        preview = ", ".join(str(i) for i in vertex_ids[:10])
        if len(vertex_ids) > 10:
            preview += ", ..."
        super().__init__(
            f"{len(vertex_ids)} render vertices are outside every tetrahedron: [{preview}]"
        )


class ConfigError(DeformableError):
    """Invalid or unreadable simulation parameters."""
