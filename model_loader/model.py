"""
Canonical Model Types

One in-memory representation shared by every format loader. A load builds
these values once and hands them back as an immutable snapshot; reloading
the file is the only way to get fresh data.

Optional vertex attributes are None when the source file did not carry
them, never a zero-filled default, so renderers can branch on presence.
"""

import io
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple

import numpy as np
from PIL import Image as PILImage

from .errors import MaterialLoadError

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]
Vec4 = Tuple[float, float, float, float]


# ============================================================================
# ENUMERATIONS
# ============================================================================

class ModelFormat(Enum):
    """The file format a Model was loaded from."""
    OBJ = "obj"
    GLTF = "gltf"
    STL = "stl"
    PLY = "ply"


class RenderMode(Enum):
    """Primitive topology. Values match the glTF primitive modes."""
    POINTS = 0
    LINES = 1
    LINE_LOOP = 2
    LINE_STRIP = 3
    TRIANGLES = 4
    TRIANGLE_STRIP = 5
    TRIANGLE_FAN = 6


class AlphaMode(Enum):
    """How the alpha of the base color is interpreted."""
    OPAQUE = "OPAQUE"
    MASK = "MASK"
    BLEND = "BLEND"


class MagFilter(Enum):
    """Magnification filter. Values are the GL constants."""
    NEAREST = 9728
    LINEAR = 9729


class MinFilter(Enum):
    """Minification filter, including the mipmap variants."""
    NEAREST = 9728
    LINEAR = 9729
    NEAREST_MIPMAP_NEAREST = 9984
    LINEAR_MIPMAP_NEAREST = 9985
    NEAREST_MIPMAP_LINEAR = 9986
    LINEAR_MIPMAP_LINEAR = 9987


class WrappingMode(Enum):
    """Texture coordinate wrapping for one axis."""
    CLAMP_TO_EDGE = 33071
    MIRRORED_REPEAT = 33648
    REPEAT = 10497


class IndexWidth(Enum):
    """Unsigned integer width of an index buffer, in bits."""
    U8 = 8
    U16 = 16
    U32 = 32


_WIDTH_BY_DTYPE = {
    np.dtype(np.uint8): IndexWidth.U8,
    np.dtype(np.uint16): IndexWidth.U16,
    np.dtype(np.uint32): IndexWidth.U32,
}


# ============================================================================
# GEOMETRY
# ============================================================================

@dataclass(frozen=True)
class Vertex:
    """
    A single vertex.

    Args:
        position: (x, y, z), always present
        color: RGBA color, or None if the source has no vertex colors
        tex_coord: (u, v), or None if the source has no texture coordinates
        normal: (x, y, z), or None if the source has no normals
    """
    position: Vec3
    color: Optional[Vec4] = None
    tex_coord: Optional[Vec2] = None
    normal: Optional[Vec3] = None


class Indices:
    """
    Index buffer tagged with the width the source file actually used.

    The width follows the numpy dtype (uint8, uint16 or uint32) and is
    never widened behind the caller's back.
    """

    __slots__ = ("_values",)

    def __init__(self, values: np.ndarray):
        values = np.asarray(values)
        if values.dtype not in _WIDTH_BY_DTYPE:
            raise ValueError(f"Unsupported index dtype: {values.dtype}")
        values = values.reshape(-1).copy()
        values.flags.writeable = False
        self._values = values

    @classmethod
    def u8(cls, values: Iterable[int]) -> "Indices":
        return cls(np.asarray(list(values), dtype=np.uint8))

    @classmethod
    def u16(cls, values: Iterable[int]) -> "Indices":
        return cls(np.asarray(list(values), dtype=np.uint16))

    @classmethod
    def u32(cls, values: Iterable[int]) -> "Indices":
        return cls(np.asarray(list(values), dtype=np.uint32))

    @property
    def width(self) -> IndexWidth:
        return _WIDTH_BY_DTYPE[self._values.dtype]

    @property
    def values(self) -> np.ndarray:
        """Read-only 1-D array of the indices."""
        return self._values

    def max(self) -> Optional[int]:
        """Largest index, or None for an empty buffer."""
        if self._values.size == 0:
            return None
        return int(self._values.max())

    def __len__(self) -> int:
        return int(self._values.size)

    def __iter__(self) -> Iterator[int]:
        return (int(i) for i in self._values)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Indices):
            return NotImplemented
        return self.width is other.width and np.array_equal(self._values, other._values)

    def __hash__(self) -> int:
        return hash((self.width, self._values.tobytes()))

    def __repr__(self) -> str:
        return f"Indices({self.width.name}, count={len(self)})"


@dataclass(frozen=True)
class Mesh:
    """
    A list of vertices rendered with one topology and one material.

    Meshes without an index buffer are flat vertex streams that can be
    drawn directly with their render mode.

    Args:
        vertices: Vertices of the mesh
        indices: Optional index buffer; every index must be < len(vertices)
        mode: Render topology
        material_index: Position in the owning Model's materials, or None
            when the mesh has no material
        name: Mesh name, if the format has one
    """
    vertices: Tuple[Vertex, ...]
    indices: Optional[Indices] = None
    mode: RenderMode = RenderMode.TRIANGLES
    material_index: Optional[int] = None
    name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "vertices", tuple(self.vertices))
        if self.indices is not None:
            highest = self.indices.max()
            if highest is not None and highest >= len(self.vertices):
                raise ValueError(
                    f"Index {highest} out of range for {len(self.vertices)} vertices"
                )

    @property
    def positions(self) -> np.ndarray:
        """Nx3 float32 array of vertex positions."""
        if not self.vertices:
            return np.zeros((0, 3), dtype=np.float32)
        return np.array([v.position for v in self.vertices], dtype=np.float32)

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (min_coords, max_coords) bounding box."""
        positions = self.positions
        if len(positions) == 0:
            raise ValueError("Mesh has no vertices.")
        return positions.min(axis=0), positions.max(axis=0)

    def triangles(self) -> np.ndarray:
        """
        Mx3 array of vertex indices, one row per triangle.

        Uses the index buffer when there is one, otherwise the vertex
        stream order. Only valid for triangle-list meshes.
        """
        if self.mode is not RenderMode.TRIANGLES:
            raise ValueError(f"Mesh topology is {self.mode.name}, not a triangle list.")
        if self.indices is not None:
            order = self.indices.values.astype(np.int64)
        else:
            order = np.arange(len(self.vertices), dtype=np.int64)
        if len(order) % 3 != 0:
            raise ValueError(f"{len(order)} indices do not form whole triangles.")
        return order.reshape(-1, 3)

    def to_trimesh(self):
        """Convert to trimesh.Trimesh for geometry processing."""
        import trimesh

        normals = None
        if self.vertices and all(v.normal is not None for v in self.vertices):
            normals = np.array([v.normal for v in self.vertices], dtype=np.float64)

        return trimesh.Trimesh(
            vertices=self.positions.astype(np.float64),
            faces=self.triangles(),
            vertex_normals=normals,
            process=False
        )


# ============================================================================
# MATERIALS
# ============================================================================

class Image(ABC):
    """An undecoded image reference. Pixels are only decoded by open()."""

    mime_type: Optional[str]

    @abstractmethod
    def _source(self):
        """Path or binary file object Pillow can open."""

    def open(self) -> PILImage.Image:
        """
        Decode the image with Pillow.

        Raises:
            MaterialLoadError: If the image cannot be read or decoded.
        """
        try:
            image = PILImage.open(self._source())
            image.load()
        except (OSError, ValueError) as e:
            raise MaterialLoadError(f"Failed to decode image {self}: {e}") from e
        return image


@dataclass(frozen=True)
class MemoryImage(Image):
    """Encoded image bytes embedded in the model file."""
    data: bytes = field(repr=False)
    mime_type: Optional[str] = None

    def _source(self):
        return io.BytesIO(self.data)

    def __str__(self) -> str:
        return f"<{len(self.data)} bytes {self.mime_type or 'unknown type'}>"


@dataclass(frozen=True)
class PathImage(Image):
    """Image stored in a separate file, referenced by path."""
    path: Path
    mime_type: Optional[str] = None

    def _source(self):
        return self.path

    def __str__(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class Sampler:
    mag_filter: Optional[MagFilter] = None
    min_filter: Optional[MinFilter] = None
    wrap_s: WrappingMode = WrappingMode.REPEAT
    wrap_t: WrappingMode = WrappingMode.REPEAT
    name: Optional[str] = None


@dataclass(frozen=True)
class Texture:
    image: Image
    sampler: Sampler = field(default_factory=Sampler)
    name: Optional[str] = None


@dataclass(frozen=True)
class Material:
    """
    Surface description shared by meshes through Mesh.material_index.

    Args:
        diffuse_texture: Base color texture
        alpha_mode: Alpha interpretation
        alpha_cutoff: Cutoff value, meaningful under AlphaMode.MASK
        double_sided: Disables back-face culling when True
        base_color: RGBA factor multiplied with the diffuse texture
        name: Material name
    """
    diffuse_texture: Optional[Texture] = None
    alpha_mode: AlphaMode = AlphaMode.OPAQUE
    alpha_cutoff: Optional[float] = None
    double_sided: bool = False
    base_color: Optional[Vec4] = None
    name: Optional[str] = None


# ============================================================================
# MODEL
# ============================================================================

@dataclass(frozen=True)
class Model:
    """
    A fully loaded model.

    Meshes refer to materials by position in `materials`, so materials are
    never reordered after the meshes are built.
    """
    meshes: Tuple[Mesh, ...]
    materials: Tuple[Material, ...]
    format: ModelFormat

    def __post_init__(self):
        object.__setattr__(self, "meshes", tuple(self.meshes))
        object.__setattr__(self, "materials", tuple(self.materials))
        for mesh in self.meshes:
            index = mesh.material_index
            if index is not None and not 0 <= index < len(self.materials):
                raise ValueError(
                    f"Mesh {mesh.name!r} refers to material {index}, "
                    f"but the model has {len(self.materials)} materials"
                )

    @property
    def vertex_count(self) -> int:
        return sum(len(mesh.vertices) for mesh in self.meshes)

    @property
    def index_count(self) -> int:
        return sum(len(mesh.indices) for mesh in self.meshes if mesh.indices is not None)
