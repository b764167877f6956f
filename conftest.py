"""
Test fixtures: small cube assets written to a temporary directory.
"""

import base64
import io
import json
import struct

import numpy as np
import pytest
from PIL import Image

# Per-face normal and the four corners of a 2x2x2 cube
CUBE_FACES = []
for _axis in range(3):
    for _sign in (-1.0, 1.0):
        _normal = [0.0, 0.0, 0.0]
        _normal[_axis] = _sign
        _corners = []
        for _a, _b in ((-1.0, -1.0), (1.0, -1.0), (1.0, 1.0), (-1.0, 1.0)):
            _p = [0.0, 0.0, 0.0]
            _p[_axis] = _sign
            _p[(_axis + 1) % 3] = _a
            _p[(_axis + 2) % 3] = _b
            _corners.append(_p)
        CUBE_FACES.append((_normal, _corners))

CUBE_UVS = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]


def cube_arrays():
    """24 vertices (4 per face), 36 triangle indices."""
    positions = np.array([c for _, corners in CUBE_FACES for c in corners], dtype=np.float32)
    normals = np.array([n for n, _ in CUBE_FACES for _ in range(4)], dtype=np.float32)
    uvs = np.array(CUBE_UVS * 6, dtype=np.float32)
    indices = []
    for face in range(6):
        base = face * 4
        indices += [base, base + 1, base + 2, base, base + 2, base + 3]
    return positions, normals, uvs, indices


def cube_triangles():
    """12 (normal, [p0, p1, p2]) triangles."""
    triangles = []
    for normal, corners in CUBE_FACES:
        triangles.append((normal, [corners[0], corners[1], corners[2]]))
        triangles.append((normal, [corners[0], corners[2], corners[3]]))
    return triangles


def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (2, 2), (255, 0, 0)).save(buf, "PNG")
    return buf.getvalue()


# ============================================================================
# glTF
# ============================================================================

def _pad4(data: bytes, fill: bytes = b"\0") -> bytes:
    return data + fill * (-len(data) % 4)


def build_gltf(index_dtype=np.uint16, normal_count=24, embedded_image=None,
               image_uri="cube%20texture.png", buffer_uri=None):
    """
    Build a glTF document and its binary buffer.

    Mesh "Cube": one indexed triangle primitive using material 0.
    Mesh "Corners": a POINTS primitive with u8 colors and u8 indices
    using material 1.
    """
    positions, normals, uvs, indices = cube_arrays()
    colors = np.tile(np.array([255, 0, 0, 255], dtype=np.uint8), (24, 1))
    point_indices = np.array([0, 1, 2, 3], dtype=np.uint8)

    chunks = [
        positions.tobytes(),
        normals.tobytes(),
        uvs.tobytes(),
        np.array(indices, dtype=index_dtype).tobytes(),
        colors.tobytes(),
        point_indices.tobytes(),
    ]
    if embedded_image is not None:
        chunks.append(embedded_image)

    binary = b""
    views = []
    for chunk in chunks:
        binary = _pad4(binary)
        views.append({"buffer": 0, "byteOffset": len(binary), "byteLength": len(chunk)})
        binary += chunk
    binary = _pad4(binary)

    index_component = {np.uint8: 5121, np.uint16: 5123, np.uint32: 5125}[index_dtype]
    accessors = [
        {"bufferView": 0, "componentType": 5126, "count": 24, "type": "VEC3",
         "min": [-1.0, -1.0, -1.0], "max": [1.0, 1.0, 1.0]},
        {"bufferView": 1, "componentType": 5126, "count": normal_count, "type": "VEC3"},
        {"bufferView": 2, "componentType": 5126, "count": 24, "type": "VEC2"},
        {"bufferView": 3, "componentType": index_component, "count": 36, "type": "SCALAR"},
        {"bufferView": 4, "componentType": 5121, "normalized": True, "count": 24, "type": "VEC4"},
        {"bufferView": 5, "componentType": 5121, "count": 4, "type": "SCALAR"},
    ]

    if embedded_image is not None:
        image = {"bufferView": 6, "mimeType": "image/png", "name": "checker"}
    else:
        image = {"uri": image_uri, "name": "checker"}

    buffer = {"byteLength": len(binary)}
    if buffer_uri is not None:
        buffer["uri"] = buffer_uri

    document = {
        "asset": {"version": "2.0"},
        "scene": 0,
        "scenes": [{"nodes": [0, 1]}],
        "nodes": [{"mesh": 0}, {"mesh": 1}],
        "meshes": [
            {"name": "Cube", "primitives": [{
                "attributes": {"POSITION": 0, "NORMAL": 1, "TEXCOORD_0": 2},
                "indices": 3,
                "material": 0,
                "mode": 4,
            }]},
            {"name": "Corners", "primitives": [{
                "attributes": {"POSITION": 0, "COLOR_0": 4},
                "indices": 5,
                "material": 1,
                "mode": 0,
            }]},
        ],
        "materials": [
            {"name": "Textured",
             "pbrMetallicRoughness": {"baseColorTexture": {"index": 0},
                                      "baseColorFactor": [0.5, 0.5, 0.5, 1.0]}},
            {"name": "Masked", "alphaMode": "MASK", "alphaCutoff": 0.3, "doubleSided": True,
             "pbrMetallicRoughness": {"baseColorFactor": [1.0, 0.0, 0.0, 1.0]}},
        ],
        "textures": [{"source": 0, "sampler": 0, "name": "checker texture"}],
        "images": [image],
        "samplers": [{"magFilter": 9729, "minFilter": 9987, "wrapS": 33071, "name": "clamped"}],
        "buffers": [buffer],
        "bufferViews": views,
        "accessors": accessors,
    }
    return document, binary


def write_glb(path, document, binary):
    json_chunk = _pad4(json.dumps(document).encode("utf-8"), b" ")
    total = 12 + 8 + len(json_chunk) + 8 + len(binary)
    with open(path, "wb") as f:
        f.write(struct.pack("<4sII", b"glTF", 2, total))
        f.write(struct.pack("<I4s", len(json_chunk), b"JSON"))
        f.write(json_chunk)
        f.write(struct.pack("<I4s", len(binary), b"BIN\0"))
        f.write(binary)


@pytest.fixture
def gltf_path(tmp_path):
    """cube.gltf with an external cube.bin and an external texture."""
    document, binary = build_gltf(buffer_uri="cube.bin")
    (tmp_path / "cube.bin").write_bytes(binary)
    (tmp_path / "cube texture.png").write_bytes(png_bytes())
    path = tmp_path / "cube.gltf"
    path.write_text(json.dumps(document))
    return path


@pytest.fixture
def glb_path(tmp_path):
    """cube.glb with the texture embedded in a bufferView."""
    document, binary = build_gltf(embedded_image=png_bytes())
    path = tmp_path / "cube.glb"
    write_glb(path, document, binary)
    return path


@pytest.fixture
def gltf_data_uri_path(tmp_path):
    """cube.gltf with buffer and image stored as base64 data URIs."""
    document, binary = build_gltf(
        image_uri="data:image/png;base64," + base64.b64encode(png_bytes()).decode("ascii"),
    )
    document["buffers"][0]["uri"] = (
        "data:application/octet-stream;base64," + base64.b64encode(binary).decode("ascii")
    )
    path = tmp_path / "embedded.gltf"
    path.write_text(json.dumps(document))
    return path


# ============================================================================
# OBJ
# ============================================================================

CUBE_OBJ = """\
# cube with two objects
mtllib cube.mtl
o Cube
v -1.0 -1.0 -1.0
v 1.0 -1.0 -1.0
v 1.0 1.0 -1.0
v -1.0 1.0 -1.0
v -1.0 -1.0 1.0
v 1.0 -1.0 1.0
v 1.0 1.0 1.0
v -1.0 1.0 1.0
vt 0.0 0.0
vt 1.0 0.0
vt 1.0 1.0
vt 0.0 1.0
vn 0.0 0.0 -1.0
vn 0.0 0.0 1.0
vn 0.0 -1.0 0.0
vn 0.0 1.0 0.0
vn -1.0 0.0 0.0
vn 1.0 0.0 0.0
usemtl Textured
f 1/1/1 4/2/1 3/3/1 2/4/1
f 5/1/2 6/2/2 7/3/2 8/4/2
f 1/1/3 2/2/3 6/3/3 5/4/3
f 4/1/4 8/2/4 7/3/4 3/4/4
f 1/1/5 5/2/5 8/3/5 4/4/5
f 2/1/6 3/2/6 7/3/6 6/4/6
o Plane
v -2.0 -2.0 0.0
v 2.0 -2.0 0.0
v 2.0 2.0 0.0
v -2.0 2.0 0.0
usemtl Plain
f 9 10 11
f 9 11 12
"""

CUBE_MTL = """\
newmtl Textured
Kd 0.8 0.6 0.4
d 0.5
map_Kd textures/cube.png

newmtl Plain
Kd 0.1 0.2 0.3

newmtl Unused
"""


@pytest.fixture
def obj_path(tmp_path):
    (tmp_path / "cube.mtl").write_text(CUBE_MTL)
    path = tmp_path / "cube.obj"
    path.write_text(CUBE_OBJ)
    return path


# ============================================================================
# PLY
# ============================================================================

def write_ply(path, vertex_properties, vertices, faces, extra=""):
    """Write an ASCII PLY file with a vertex and a face element."""
    header = ["ply", "format ascii 1.0", f"element vertex {len(vertices)}"]
    header += [f"property float {name}" for name in vertex_properties]
    header += [f"element face {len(faces)}", "property list uchar int vertex_indices"]
    if extra:
        header.append(extra)
    header.append("end_header")
    body = [" ".join(str(v) for v in vertex) for vertex in vertices]
    body += [" ".join(str(i) for i in [len(face)] + list(face)) for face in faces]
    path.write_text("\n".join(header + body) + "\n")
    return path


CUBE_PLY_CORNERS = [
    (-1, -1, -1), (1, -1, -1), (1, 1, -1), (-1, 1, -1),
    (-1, -1, 1), (1, -1, 1), (1, 1, 1), (-1, 1, 1),
]

CUBE_PLY_FACES = [
    (0, 3, 2), (0, 2, 1),
    (4, 5, 6), (4, 6, 7),
    (0, 1, 5), (0, 5, 4),
    (3, 7, 6), (3, 6, 2),
    (0, 4, 7), (0, 7, 3),
    (1, 2, 6), (1, 6, 5),
]


@pytest.fixture
def ply_path(tmp_path):
    """Cube with per-vertex normals, s/t texture coordinates and a quality value."""
    vertices = []
    for x, y, z in CUBE_PLY_CORNERS:
        length = (x * x + y * y + z * z) ** 0.5
        vertices.append((x, y, z, x / length, y / length, z / length,
                         (x + 1) / 2, (y + 1) / 2, 0.5))
    return write_ply(tmp_path / "cube.ply",
                     ["x", "y", "z", "nx", "ny", "nz", "s", "t", "quality"],
                     vertices, CUBE_PLY_FACES)


# ============================================================================
# STL
# ============================================================================

def write_binary_stl(path, triangles):
    with open(path, "wb") as f:
        f.write(b"binary cube".ljust(80, b"\0"))
        f.write(struct.pack("<I", len(triangles)))
        for normal, corners in triangles:
            values = list(normal) + [c for corner in corners for c in corner]
            f.write(struct.pack("<12fH", *values, 0))
    return path


@pytest.fixture
def stl_path(tmp_path):
    return write_binary_stl(tmp_path / "cube.stl", cube_triangles())
