"""
OBJ Loader (pywavefront)

pywavefront triangulates the faces into interleaved vertex rows. Rows are
collected per object and material, and each such batch becomes one Mesh;
identical vertices inside a batch are shared through a 32-bit index buffer.

The material library (.mtl) is read by a dedicated parser class so that
its failures are reported as MaterialLoadError while geometry failures are
reported as ModelParsingError.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
from pywavefront import Wavefront
from pywavefront.material import Material as WavefrontMaterial, MaterialParser
from pywavefront.mesh import Mesh as WavefrontMesh
from pywavefront.obj import ObjParser
from pywavefront.parser import auto_consume

from .errors import MaterialLoadError, ModelParsingError, OpenFileError
from .model import (AlphaMode, Indices, Material, Mesh, Model, ModelFormat, PathImage,
                    RenderMode, Texture, Vertex)

logger = logging.getLogger(__name__)


# ============================================================================
# PYWAVEFRONT EXTENSIONS
# ============================================================================

class ObjMaterial(WavefrontMaterial):
    """pywavefront material that also remembers which MTL fields were given."""

    def __init__(self, name, *args, **kwargs):
        super().__init__(name, *args, **kwargs)
        self.kd: Optional[Tuple[float, float, float]] = None
        self.dissolve: Optional[float] = None
        self.diffuse_texname: Optional[str] = None


class MaterialLibraryParser(MaterialParser):
    """MTL parser that raises MaterialLoadError for any failure."""

    def __init__(self, file_name, *args, **kwargs):
        try:
            super().__init__(file_name, *args, **kwargs)
        except MaterialLoadError:
            raise
        except Exception as e:
            raise MaterialLoadError(f"Failed to load MTL file {file_name}: {e}") from e

    @auto_consume
    def parse_newmtl(self):
        name = self.line[self.line.find(' ') + 1:].strip()
        self.this_material = ObjMaterial(name)
        self.materials[name] = self.this_material

    @auto_consume
    def parse_Kd(self):
        r, g, b = (float(value) for value in self.values[1:4])
        self.this_material.kd = (r, g, b)

    @auto_consume
    def parse_d(self):
        self.this_material.dissolve = float(self.values[1])

    @auto_consume
    def parse_map_Kd(self):
        self.this_material.diffuse_texname = self.line[self.line.find(' ') + 1:].strip()


class MeshBatch(WavefrontMaterial):
    """Interleaved vertices of one object drawn with one library material."""

    def __init__(self, mesh: WavefrontMesh, source: WavefrontMaterial):
        super().__init__(source.name, is_default=source.is_default)
        self.mesh = mesh
        self.source = source


class _ObjParser(ObjParser):
    """
    ObjParser that keeps faces of different objects apart.

    pywavefront appends every face to its material, so two objects using
    the same material end up in one vertex list. Faces are collected into
    one MeshBatch per (object, material) pair instead, in file order.
    """
    material_parser_cls = MaterialLibraryParser

    def __init__(self, *args, **kwargs):
        # ObjParser parses from its constructor
        self.batches: Dict[Tuple[WavefrontMesh, WavefrontMaterial], MeshBatch] = {}
        super().__init__(*args, **kwargs)

    def parse_f(self):
        if self.material is None:
            self.material = WavefrontMaterial(
                "default{}".format(len(self.wavefront.materials)),
                is_default=True,
                has_faces=self.collect_faces
            )
            self.wavefront.materials[self.material.name] = self.material

        if self.mesh is None:
            self.mesh = WavefrontMesh(has_faces=self.collect_faces)
            self.wavefront.add_mesh(self.mesh)

        library_material = self.material
        key = (self.mesh, library_material)
        if key not in self.batches:
            self.batches[key] = MeshBatch(self.mesh, library_material)

        self.material = self.batches[key]
        try:
            super().parse_f()
        finally:
            self.material = library_material


class _Wavefront(Wavefront):
    parser_cls = _ObjParser


# ============================================================================
# CONVERSION
# ============================================================================

def _vertex_layout(vertex_format: str) -> Dict[str, Tuple[int, int]]:
    """
    Offsets of each attribute in an interleaved pywavefront row.

    'T2F_N3F_V3F' -> {'T': (0, 2), 'N': (2, 5), 'V': (5, 8)}
    """
    layout = {}
    offset = 0
    for token in vertex_format.split('_'):
        size = int(token[1:-1])
        layout[token[0]] = (offset, offset + size)
        offset += size
    return layout


def _load_batch(material: WavefrontMaterial) -> Tuple[List[Vertex], Optional[Indices]]:
    """Turn one interleaved material batch into shared vertices and u32 indices."""
    if not material.vertices:
        return [], None

    layout = _vertex_layout(material.vertex_format)
    stride = max(end for _, end in layout.values())
    data = np.asarray(material.vertices, dtype=np.float32)
    if data.size % stride != 0:
        raise ModelParsingError(
            f"Vertex data of material '{material.name}' does not match format "
            f"{material.vertex_format}"
        )
    rows = data.reshape(-1, stride)

    index_of: Dict[bytes, int] = {}
    unique_rows = []
    indices = []
    for row in rows:
        key = row.tobytes()
        index = index_of.get(key)
        if index is None:
            index = len(unique_rows)
            index_of[key] = index
            unique_rows.append(row.tolist())
        indices.append(index)

    def attribute(row, name):
        if name not in layout:
            return None
        start, end = layout[name]
        return tuple(row[start:end])

    vertices = []
    for row in unique_rows:
        color = attribute(row, 'C')
        vertices.append(Vertex(
            position=attribute(row, 'V'),
            # OBJ vertex colors have no alpha
            color=color + (1.0,) if color is not None else None,
            tex_coord=attribute(row, 'T'),
            normal=attribute(row, 'N'),
        ))

    return vertices, Indices.u32(indices)


def _convert_material(material: ObjMaterial, model_dir: Path) -> Material:
    base_color = None
    if material.kd is not None:
        base_color = material.kd + (1.0,)

    diffuse_texture = None
    if material.diffuse_texname:
        diffuse_texture = Texture(
            image=PathImage(model_dir / material.diffuse_texname),
            name=material.diffuse_texname,
        )

    return Material(
        diffuse_texture=diffuse_texture,
        alpha_mode=AlphaMode.OPAQUE,
        alpha_cutoff=material.dissolve,
        double_sided=False,
        base_color=base_color,
        name=material.name,
    )


# ============================================================================
# LOADER
# ============================================================================

def load_obj(filepath: Path) -> Model:
    """
    Load an OBJ file and the material libraries it references.

    Args:
        filepath: Path to OBJ file

    Returns:
        Model with one triangle-list mesh per object and material

    Raises:
        MaterialLoadError: If a referenced MTL file is missing or malformed.
        ModelParsingError: If the OBJ geometry cannot be parsed.
    """
    filepath = Path(filepath)
    try:
        scene = _Wavefront(str(filepath), create_materials=True)
    except MaterialLoadError:
        raise
    except OSError as e:
        raise OpenFileError(f"Cannot open OBJ file {filepath}: {e}") from e
    except Exception as e:
        raise ModelParsingError(f"pywavefront failed to load OBJ: {e}") from e

    model_dir = filepath.parent

    # Placeholder materials pywavefront creates for faces without a usable
    # `usemtl` are not part of the file and are not reported.
    library = [m for m in scene.materials.values() if isinstance(m, ObjMaterial)]
    material_index = {id(m): i for i, m in enumerate(library)}

    materials = []
    for i, material in enumerate(library):
        logger.debug("Loading material %s %d/%d", material.name, i + 1, len(library))
        materials.append(_convert_material(material, model_dir))

    meshes = []
    for batch in scene.parser.batches.values():
        logger.debug("Loading mesh %s (material %s)", batch.mesh.name, batch.name)
        vertices, indices = _load_batch(batch)
        meshes.append(Mesh(
            vertices=vertices,
            indices=indices,
            mode=RenderMode.TRIANGLES,
            material_index=material_index.get(id(batch.source)),
            name=batch.mesh.name,
        ))

    return Model(meshes=meshes, materials=materials, format=ModelFormat.OBJ)
