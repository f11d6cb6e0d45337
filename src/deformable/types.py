import numpy as np
import numpy.typing as npt

VEC3 = npt.NDArray[np.float64]
POINTS = npt.NDArray[np.float64]
MAT4 = npt.NDArray[np.float64]
FACE = npt.NDArray[np.int32]
TETRA = npt.NDArray[np.int32]
INDEX = npt.NDArray[np.int32]
MASK = npt.NDArray[np.bool_]
GEN_MESH = tuple[POINTS, FACE]
VIEW = npt.NDArray[np.float64]
PROJ = npt.NDArray[np.float32]
