"""
Unified 3D Model Loader

Loads glTF/GLB, OBJ (+ MTL), PLY and STL files into one canonical Model:

    from model_loader import load_model

    model = load_model("cube.glb")
    for mesh in model.meshes:
        print(mesh.name, len(mesh.vertices))
"""

from .errors import (FileNotExistsError, MaterialLoadError, ModelLoadError, ModelParsingError,
                     OpenFileError, UnknownFormatError)
from .loader import (detect_format, load_model, register_format, supported_extensions,
                     supported_formats, unregister_format)
from .logging_config import setup_logging
from .model import (AlphaMode, Image, IndexWidth, Indices, MagFilter, Material, MemoryImage, Mesh,
                    MinFilter, Model, ModelFormat, PathImage, RenderMode, Sampler, Texture,
                    Vertex, WrappingMode)

__version__ = "0.1.0"

__all__ = [
    "AlphaMode",
    "FileNotExistsError",
    "Image",
    "IndexWidth",
    "Indices",
    "MagFilter",
    "Material",
    "MaterialLoadError",
    "MemoryImage",
    "Mesh",
    "MinFilter",
    "Model",
    "ModelFormat",
    "ModelLoadError",
    "ModelParsingError",
    "OpenFileError",
    "PathImage",
    "RenderMode",
    "Sampler",
    "Texture",
    "UnknownFormatError",
    "Vertex",
    "WrappingMode",
    "detect_format",
    "load_model",
    "register_format",
    "setup_logging",
    "supported_extensions",
    "supported_formats",
    "unregister_format",
]
