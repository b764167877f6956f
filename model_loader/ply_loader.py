"""
PLY Loader (plyfile)

PLY files start with a header that declares each element (vertex, face,
...) and its properties. plyfile reads the header and payload; this module
walks each element row by row with a small record class per element type
and then expands the faces into a flat vertex stream.

Only triangles are supported: the first three indices of every face are
used. Properties and elements this loader does not understand are logged
and skipped, since exporters commonly add extra per-vertex data.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from plyfile import PlyData, PlyParseError

from .errors import ModelParsingError, OpenFileError
from .model import Mesh, Model, ModelFormat, RenderMode, Vertex

logger = logging.getLogger(__name__)

# Texture coordinate spellings seen in the wild (Blender writes s/t)
U_ALIASES = ('u', 's', 'tx', 'texture_u')
V_ALIASES = ('v', 't', 'ty', 'texture_v')


def _all_present(*components: Optional[float]) -> Optional[Tuple[float, ...]]:
    """Return the components as a tuple only if none of them is missing."""
    if any(c is None for c in components):
        return None
    return tuple(components)


# ============================================================================
# ELEMENT RECORDS
# ============================================================================

class PlyVertex:
    """Properties of one row of the 'vertex' element."""

    __slots__ = ('x', 'y', 'z', 'nx', 'ny', 'nz', 'u', 'v')

    def __init__(self):
        for name in self.__slots__:
            setattr(self, name, None)

    def set_property(self, key: str, value) -> bool:
        """Store a property value; returns False for keys this record ignores."""
        if key in ('x', 'y', 'z', 'nx', 'ny', 'nz'):
            setattr(self, key, float(value))
        elif key in U_ALIASES:
            self.u = float(value)
        elif key in V_ALIASES:
            self.v = float(value)
        else:
            return False
        return True

    @property
    def position(self) -> Optional[Tuple[float, float, float]]:
        return _all_present(self.x, self.y, self.z)

    @property
    def normal(self) -> Optional[Tuple[float, float, float]]:
        return _all_present(self.nx, self.ny, self.nz)

    @property
    def tex_coord(self) -> Optional[Tuple[float, float]]:
        return _all_present(self.u, self.v)


class PlyFace:
    """Properties of one row of the 'face' element."""

    __slots__ = ('vertex_indices',)

    def __init__(self):
        self.vertex_indices: Tuple[int, ...] = ()

    def set_property(self, key: str, value) -> bool:
        if key in ('vertex_indices', 'vertex_index'):
            self.vertex_indices = tuple(int(i) for i in value)
            return True
        return False


RECORD_TYPES = {
    'vertex': PlyVertex,
    'face': PlyFace,
}


def _read_element(element, record_cls) -> List:
    """Visit every row of an element, returning one record per row."""
    keys = [prop.name for prop in element.properties]
    ignored = set()
    records = []

    for row in element.data:
        record = record_cls()
        for key in keys:
            if not record.set_property(key, row[key]):
                ignored.add(key)
        records.append(record)

    for key in sorted(ignored):
        logger.warning("PLY %s: ignoring unexpected property '%s'", element.name, key)

    return records


# ============================================================================
# LOADER
# ============================================================================

def load_ply(filepath: Path) -> Model:
    """
    Load an ASCII or binary PLY file.

    Args:
        filepath: Path to PLY file

    Returns:
        Model with one flat (unindexed) triangle-list mesh and no materials
    """
    try:
        with open(filepath, 'rb') as f:
            ply_data = PlyData.read(f)
    except OSError as e:
        raise OpenFileError(f"Cannot open PLY file {filepath}: {e}") from e
    except (PlyParseError, ValueError) as e:
        raise ModelParsingError(f"plyfile failed to load PLY: {e}") from e

    records = {'vertex': [], 'face': []}
    for element in ply_data.elements:
        record_cls = RECORD_TYPES.get(element.name)
        if record_cls is None:
            logger.warning("PLY: skipping unsupported element '%s' (%d rows)",
                           element.name, element.count)
            continue
        try:
            records[element.name] = _read_element(element, record_cls)
        except (TypeError, ValueError) as e:
            raise ModelParsingError(
                f"Invalid '{element.name}' data in {filepath}: {e}"
            ) from e

    ply_vertices = records['vertex']
    for i, ply_vertex in enumerate(ply_vertices):
        if ply_vertex.position is None:
            raise ModelParsingError(f"PLY vertex {i} is missing x, y or z")

    vertices = []
    polygons = 0
    for face_number, face in enumerate(records['face']):
        if len(face.vertex_indices) < 3:
            raise ModelParsingError(
                f"PLY face {face_number} has {len(face.vertex_indices)} vertices, need 3"
            )
        if len(face.vertex_indices) > 3:
            polygons += 1

        for index in face.vertex_indices[:3]:
            if not 0 <= index < len(ply_vertices):
                raise ModelParsingError(
                    f"PLY face {face_number} refers to vertex {index}, "
                    f"but there are {len(ply_vertices)} vertices"
                )
            source = ply_vertices[index]
            vertices.append(Vertex(
                position=source.position,
                tex_coord=source.tex_coord,
                normal=source.normal,
            ))

    if polygons:
        logger.warning("PLY: %d faces have more than 3 vertices; only their first "
                       "triangle was loaded", polygons)

    mesh = Mesh(vertices=vertices, mode=RenderMode.TRIANGLES)
    return Model(meshes=[mesh], materials=[], format=ModelFormat.PLY)
