"""
STL Loader (numpy-stl)

STL is a triangle soup: every facet stores one normal and three corner
positions. Each corner becomes its own vertex carrying the facet normal,
so the mesh is flat shaded and has no index buffer or materials.
"""

import logging
from pathlib import Path

from stl import mesh as stl_mesh

from .errors import ModelParsingError, OpenFileError
from .model import Mesh, Model, ModelFormat, RenderMode, Vertex

logger = logging.getLogger(__name__)


def load_stl(filepath: Path) -> Model:
    """
    Load an ASCII or binary STL file.

    Args:
        filepath: Path to STL file

    Returns:
        Model with a single unnamed triangle-list mesh
    """
    try:
        # Keep the normals stored in the file instead of recomputing them
        stl_data = stl_mesh.Mesh.from_file(str(filepath), calculate_normals=False)
    except OSError as e:
        raise OpenFileError(f"Cannot open STL file {filepath}: {e}") from e
    except Exception as e:
        raise ModelParsingError(f"numpy-stl failed to load STL: {e}") from e

    vectors = stl_data.vectors
    normals = stl_data.normals
    logger.debug("STL %s: %d facets", filepath, len(vectors))

    vertices = []
    for corners, facet_normal in zip(vectors.tolist(), normals.tolist()):
        normal = tuple(facet_normal)
        for position in corners:
            vertices.append(Vertex(position=tuple(position), normal=normal))

    mesh = Mesh(vertices=vertices, mode=RenderMode.TRIANGLES)
    return Model(meshes=[mesh], materials=[], format=ModelFormat.STL)
