"""
glTF Loader (pygltflib + numpy)

pygltflib parses the JSON document (and the GLB container); buffers,
accessors and images are resolved here. Every primitive of every mesh is
loaded as its own Mesh; the node hierarchy is not walked.

All buffers are read into memory before materials and meshes are
converted, because images and accessors may point into any of them.
Images are never decoded: embedded images become MemoryImage blobs and
images referenced by URI become PathImage references next to the model.
"""

import base64
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from urllib.parse import unquote, unquote_to_bytes

import numpy as np
from pygltflib import GLTF2

from .errors import MaterialLoadError, ModelParsingError, OpenFileError
from .model import (AlphaMode, Indices, MagFilter, Material, MemoryImage, Mesh, MinFilter,
                    Model, ModelFormat, PathImage, RenderMode, Sampler, Texture, Vertex,
                    WrappingMode)

logger = logging.getLogger(__name__)

GLB_MAGIC = b"glTF"

COMPONENT_DTYPES = {
    5120: np.int8,
    5121: np.uint8,
    5122: np.int16,
    5123: np.uint16,
    5125: np.uint32,
    5126: np.float32,
}

TYPE_SIZES = {
    "SCALAR": 1,
    "VEC2": 2,
    "VEC3": 3,
    "VEC4": 4,
    "MAT2": 4,
    "MAT3": 9,
    "MAT4": 16,
}

INDEX_DTYPES = (np.dtype(np.uint8), np.dtype(np.uint16), np.dtype(np.uint32))


def _lookup(items: Optional[Sequence], index: Optional[int], what: str,
            error=ModelParsingError):
    """Return items[index], raising `error` for a dangling reference."""
    if items is None or index is None or not 0 <= index < len(items):
        raise error(f"Invalid {what} index: {index}")
    return items[index]


def _decode_data_uri(uri: str) -> Tuple[bytes, Optional[str]]:
    """Decode a `data:` URI into (bytes, mime type)."""
    header, sep, payload = uri.partition(",")
    if not sep:
        raise ValueError("malformed data URI")
    media_type = header[len("data:"):]
    if media_type.endswith(";base64"):
        data = base64.b64decode(payload)
        media_type = media_type[:-len(";base64")]
    else:
        data = unquote_to_bytes(payload)
    mime_type = media_type.split(";")[0] or None
    return data, mime_type


# ============================================================================
# DOCUMENT & BUFFERS
# ============================================================================

def _load_document(filepath: Path) -> GLTF2:
    try:
        with open(filepath, "rb") as f:
            magic = f.read(4)
    except OSError as e:
        raise OpenFileError(f"Cannot open glTF file {filepath}: {e}") from e

    # Sniff the container instead of trusting the extension
    try:
        if magic == GLB_MAGIC:
            gltf = GLTF2.load_binary(str(filepath))
        else:
            gltf = GLTF2.load_json(str(filepath))
    except Exception as e:
        raise ModelParsingError(f"pygltflib failed to load glTF: {e}") from e

    if gltf is None:
        raise ModelParsingError(f"pygltflib could not read {filepath}")
    return gltf


def _resolve_buffers(gltf: GLTF2, model_dir: Path) -> List[bytes]:
    """Load the contents of every buffer: GLB chunk, data URI or external file."""
    buffers = []
    for i, buffer in enumerate(gltf.buffers):
        uri = buffer.uri
        if uri is None:
            data = gltf.binary_blob()
            if data is None:
                raise ModelParsingError(f"Buffer {i} has no URI and there is no GLB binary chunk")
        elif uri.startswith("data:"):
            try:
                data, _ = _decode_data_uri(uri)
            except ValueError as e:
                raise ModelParsingError(f"Buffer {i} has an invalid data URI: {e}") from e
        else:
            buffer_path = model_dir / unquote(uri)
            try:
                data = buffer_path.read_bytes()
            except OSError as e:
                raise ModelParsingError(f"Failed to load glTF buffer {buffer_path}: {e}") from e

        if buffer.byteLength is not None and len(data) < buffer.byteLength:
            raise ModelParsingError(
                f"Buffer {i} holds {len(data)} bytes, expected {buffer.byteLength}"
            )
        buffers.append(bytes(data))
    return buffers


# ============================================================================
# ACCESSORS
# ============================================================================

def _read_view(gltf: GLTF2, buffers: List[bytes], view_index: int, byte_offset: int,
               dtype: np.dtype, count: int, components: int) -> np.ndarray:
    """Read `count` elements of `components` values each from a bufferView."""
    view = _lookup(gltf.bufferViews, view_index, "bufferView")
    buffer = _lookup(buffers, view.buffer, "buffer")

    if count == 0:
        return np.zeros((0, components), dtype=dtype.newbyteorder("="))

    element_size = dtype.itemsize * components
    stride = view.byteStride or element_size
    view_start = view.byteOffset or 0
    view_end = view_start + view.byteLength
    start = view_start + byte_offset
    end = start + stride * (count - 1) + element_size

    if end > view_end or view_end > len(buffer):
        raise ModelParsingError(
            f"Accessor reads past the end of bufferView {view_index}"
        )

    values = np.ndarray(
        shape=(count, components),
        dtype=dtype,
        buffer=buffer,
        offset=start,
        strides=(stride, dtype.itemsize)
    )
    return values.astype(dtype.newbyteorder("="))


def _read_accessor(gltf: GLTF2, buffers: List[bytes], accessor_index: int) -> np.ndarray:
    """
    Decode an accessor into a (count, components) array.

    Handles interleaved views (byteStride), accessors without a bufferView
    (all zeros) and sparse substitution.
    """
    accessor = _lookup(gltf.accessors, accessor_index, "accessor")
    try:
        dtype = np.dtype(COMPONENT_DTYPES[accessor.componentType]).newbyteorder("<")
        components = TYPE_SIZES[accessor.type]
    except KeyError as e:
        raise ModelParsingError(f"Unsupported accessor layout: {e}") from e

    count = accessor.count or 0
    if accessor.bufferView is None:
        values = np.zeros((count, components), dtype=dtype.newbyteorder("="))
    else:
        values = _read_view(gltf, buffers, accessor.bufferView, accessor.byteOffset or 0,
                            dtype, count, components)

    sparse = accessor.sparse
    if sparse is not None and sparse.count:
        try:
            index_dtype = np.dtype(COMPONENT_DTYPES[sparse.indices.componentType]).newbyteorder("<")
        except KeyError as e:
            raise ModelParsingError(f"Unsupported sparse index type: {e}") from e
        positions = _read_view(gltf, buffers, sparse.indices.bufferView,
                               sparse.indices.byteOffset or 0, index_dtype, sparse.count, 1)
        replacements = _read_view(gltf, buffers, sparse.values.bufferView,
                                  sparse.values.byteOffset or 0, dtype, sparse.count, components)
        positions = positions.reshape(-1).astype(np.int64)
        if positions.min() < 0 or positions.max() >= count:
            raise ModelParsingError(f"Sparse accessor {accessor_index} index out of range")
        values[positions] = replacements

    return values


def _to_float(values: np.ndarray) -> np.ndarray:
    """Convert float or normalized integer components to float32."""
    if values.dtype.kind == "f":
        return values.astype(np.float32)
    info = np.iinfo(values.dtype)
    floats = values.astype(np.float32) / info.max
    if info.min < 0:
        floats = np.maximum(floats, -1.0)
    return floats


def _read_attribute(gltf: GLTF2, buffers: List[bytes], accessor_index: Optional[int],
                    name: str, sizes: Tuple[int, ...], count: int) -> Optional[list]:
    """
    Read one vertex attribute as a list of float tuples.

    Returns None if the primitive does not have the attribute. The attribute
    must have exactly one entry per position.
    """
    if accessor_index is None:
        return None

    values = _read_accessor(gltf, buffers, accessor_index)
    if values.shape[1] not in sizes:
        raise ModelParsingError(f"{name} has {values.shape[1]} components, expected {sizes}")
    if len(values) != count:
        raise ModelParsingError(
            f"{name} has {len(values)} entries but POSITION has {count}"
        )
    return [tuple(v) for v in _to_float(values).tolist()]


# ============================================================================
# MATERIALS
# ============================================================================

def _convert_sampler(sampler) -> Sampler:
    try:
        return Sampler(
            mag_filter=MagFilter(sampler.magFilter) if sampler.magFilter is not None else None,
            min_filter=MinFilter(sampler.minFilter) if sampler.minFilter is not None else None,
            wrap_s=WrappingMode(sampler.wrapS) if sampler.wrapS is not None else WrappingMode.REPEAT,
            wrap_t=WrappingMode(sampler.wrapT) if sampler.wrapT is not None else WrappingMode.REPEAT,
            name=getattr(sampler, "name", None),
        )
    except ValueError as e:
        raise MaterialLoadError(f"Unsupported sampler setting: {e}") from e


def _load_image(gltf: GLTF2, buffers: List[bytes], model_dir: Path, image):
    if image.bufferView is not None:
        view = _lookup(gltf.bufferViews, image.bufferView, "bufferView", MaterialLoadError)
        data = _lookup(buffers, view.buffer, "buffer", MaterialLoadError)
        begin = view.byteOffset or 0
        end = begin + view.byteLength
        if end > len(data):
            raise MaterialLoadError(f"Image bufferView {image.bufferView} exceeds its buffer")
        return MemoryImage(data=data[begin:end], mime_type=image.mimeType)

    if image.uri is None:
        raise MaterialLoadError(f"Image {image.name!r} has neither a URI nor a bufferView")

    if image.uri.startswith("data:"):
        try:
            data, mime_type = _decode_data_uri(image.uri)
        except ValueError as e:
            raise MaterialLoadError(f"Image {image.name!r} has an invalid data URI: {e}") from e
        return MemoryImage(data=data, mime_type=image.mimeType or mime_type)

    return PathImage(path=model_dir / unquote(image.uri), mime_type=image.mimeType)


def _load_texture(gltf: GLTF2, buffers: List[bytes], model_dir: Path,
                  texture_index: int) -> Texture:
    texture = _lookup(gltf.textures, texture_index, "texture", MaterialLoadError)
    image = _lookup(gltf.images, texture.source, "image", MaterialLoadError)

    if texture.sampler is None:
        sampler = Sampler()
    else:
        sampler = _convert_sampler(
            _lookup(gltf.samplers, texture.sampler, "sampler", MaterialLoadError)
        )

    return Texture(
        image=_load_image(gltf, buffers, model_dir, image),
        sampler=sampler,
        name=texture.name,
    )


def _load_material(gltf: GLTF2, buffers: List[bytes], model_dir: Path, material) -> Material:
    base_color = (1.0, 1.0, 1.0, 1.0)
    diffuse_texture = None

    pbr = material.pbrMetallicRoughness
    if pbr is not None:
        if pbr.baseColorFactor is not None:
            if len(pbr.baseColorFactor) != 4:
                raise MaterialLoadError(
                    f"Material {material.name!r} base color must have 4 components"
                )
            base_color = tuple(float(c) for c in pbr.baseColorFactor)
        if pbr.baseColorTexture is not None:
            diffuse_texture = _load_texture(gltf, buffers, model_dir, pbr.baseColorTexture.index)

    try:
        alpha_mode = AlphaMode(material.alphaMode or AlphaMode.OPAQUE.value)
    except ValueError as e:
        raise MaterialLoadError(f"Material {material.name!r}: {e}") from e

    # The cutoff only means something in MASK mode (glTF default 0.5)
    alpha_cutoff = None
    if alpha_mode is AlphaMode.MASK:
        alpha_cutoff = float(material.alphaCutoff if material.alphaCutoff is not None else 0.5)

    return Material(
        diffuse_texture=diffuse_texture,
        alpha_mode=alpha_mode,
        alpha_cutoff=alpha_cutoff,
        double_sided=bool(material.doubleSided),
        base_color=base_color,
        name=material.name,
    )


# ============================================================================
# MESHES
# ============================================================================

def _load_primitive(gltf: GLTF2, buffers: List[bytes], primitive, name: Optional[str],
                    material_count: int) -> Mesh:
    attributes = primitive.attributes
    if attributes.POSITION is None:
        raise ModelParsingError(f"Primitive of mesh {name!r} has no POSITION attribute")

    positions = _read_accessor(gltf, buffers, attributes.POSITION)
    if positions.shape[1] != 3:
        raise ModelParsingError(f"POSITION of mesh {name!r} is not a VEC3")
    count = len(positions)

    normals = _read_attribute(gltf, buffers, attributes.NORMAL, "NORMAL", (3,), count)
    colors = _read_attribute(gltf, buffers, attributes.COLOR_0, "COLOR_0", (3, 4), count)
    tex_coords = _read_attribute(gltf, buffers, attributes.TEXCOORD_0, "TEXCOORD_0", (2,), count)

    vertices = []
    for i, position in enumerate(positions.astype(np.float32).tolist()):
        color = colors[i] if colors is not None else None
        if color is not None and len(color) == 3:
            color = color + (1.0,)
        vertices.append(Vertex(
            position=tuple(position),
            color=color,
            tex_coord=tex_coords[i] if tex_coords is not None else None,
            normal=normals[i] if normals is not None else None,
        ))

    indices = None
    if primitive.indices is not None:
        raw = _read_accessor(gltf, buffers, primitive.indices)
        if raw.dtype not in INDEX_DTYPES or raw.shape[1] != 1:
            raise ModelParsingError(f"Index accessor of mesh {name!r} is not an unsigned SCALAR")
        indices = Indices(raw.reshape(-1))

    try:
        mode = RenderMode(primitive.mode if primitive.mode is not None else RenderMode.TRIANGLES.value)
    except ValueError as e:
        raise ModelParsingError(f"Mesh {name!r}: {e}") from e

    if primitive.material is not None and not 0 <= primitive.material < material_count:
        raise ModelParsingError(f"Mesh {name!r} refers to missing material {primitive.material}")

    try:
        return Mesh(
            vertices=vertices,
            indices=indices,
            mode=mode,
            material_index=primitive.material,
            name=name,
        )
    except ValueError as e:
        raise ModelParsingError(f"Mesh {name!r}: {e}") from e


# ============================================================================
# LOADER
# ============================================================================

def load_gltf(filepath: Path) -> Model:
    """
    Load a .gltf (JSON + external/embedded buffers) or .glb file.

    Args:
        filepath: Path to glTF file

    Returns:
        Model with one Mesh per primitive and the document's materials
    """
    filepath = Path(filepath)
    gltf = _load_document(filepath)
    model_dir = filepath.parent

    buffers = _resolve_buffers(gltf, model_dir)

    materials = []
    for i, material in enumerate(gltf.materials):
        logger.debug("Loading material %s %d/%d", material.name or "Unknown", i + 1,
                     len(gltf.materials))
        materials.append(_load_material(gltf, buffers, model_dir, material))

    meshes = []
    for gltf_mesh in gltf.meshes:
        primitives = gltf_mesh.primitives
        for i, primitive in enumerate(primitives):
            logger.debug("Loading mesh %s primitive %d/%d", gltf_mesh.name, i + 1, len(primitives))
            meshes.append(_load_primitive(gltf, buffers, primitive, gltf_mesh.name, len(materials)))

    return Model(meshes=meshes, materials=materials, format=ModelFormat.GLTF)
