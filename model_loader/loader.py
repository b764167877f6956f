"""
Format Dispatcher

Maps file extensions to format tags and format tags to loader functions.
Loaders live in a registry so formats can be added or removed without
touching the dispatch logic.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from .errors import FileNotExistsError, UnknownFormatError
from .model import Model, ModelFormat
from . import gltf_loader, obj_loader, ply_loader, stl_loader

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]
Loader = Callable[[Path], Model]

_REGISTRY: Dict[ModelFormat, Tuple[Tuple[str, ...], Loader]] = {}


# ============================================================================
# REGISTRY
# ============================================================================

def register_format(model_format: ModelFormat, extensions: List[str], loader: Loader) -> None:
    """
    Register (or replace) the loader for a format.

    Args:
        model_format: Format tag the loader produces
        extensions: File extensions without the dot, matched case-sensitively
        loader: Callable taking a Path and returning a Model
    """
    extensions = tuple(ext.lstrip('.') for ext in extensions)
    for other, (other_exts, _) in _REGISTRY.items():
        clash = set(extensions) & set(other_exts)
        if other is not model_format and clash:
            raise ValueError(
                f"Extension(s) {', '.join(sorted(clash))} already registered for {other.name}"
            )
    _REGISTRY[model_format] = (extensions, loader)


def unregister_format(model_format: ModelFormat) -> None:
    """Remove a format; loading it afterwards fails with UnknownFormatError."""
    _REGISTRY.pop(model_format, None)


def supported_formats() -> List[ModelFormat]:
    return list(_REGISTRY)


def supported_extensions() -> List[str]:
    return [ext for extensions, _ in _REGISTRY.values() for ext in extensions]


# ============================================================================
# DISPATCH
# ============================================================================

def _check_exists(path: Path) -> None:
    if not path.exists():
        raise FileNotExistsError(f"File not found: {path}")


def detect_format(filepath: PathLike) -> ModelFormat:
    """
    Determine the format of a model file from its extension.

    Raises:
        FileNotExistsError: If the path does not exist.
        UnknownFormatError: If the extension is missing or not registered.
    """
    path = Path(filepath)
    _check_exists(path)

    ext = path.suffix[1:]
    if not ext:
        raise UnknownFormatError(f"File has no extension: {path}")

    for model_format, (extensions, _) in _REGISTRY.items():
        if ext in extensions:
            return model_format

    supported = ', '.join('.' + e for e in supported_extensions())
    raise UnknownFormatError(
        f"Unsupported format: .{ext}\n"
        f"Supported formats: {supported}"
    )


def load_model(filepath: PathLike, model_format: Optional[ModelFormat] = None) -> Model:
    """
    Load any supported 3D model file.

    Supported formats:
    - OBJ (+ MTL): pywavefront
    - glTF / GLB: pygltflib
    - STL: numpy-stl
    - PLY: plyfile

    Args:
        filepath: Path to 3D model file
        model_format: Explicit format; skips extension detection when given

    Returns:
        Model with all meshes and materials of the file

    Raises:
        ModelLoadError: One of its subclasses, depending on what failed.
    """
    path = Path(filepath)

    if model_format is None:
        model_format = detect_format(path)
    else:
        _check_exists(path)

    try:
        _, loader = _REGISTRY[model_format]
    except KeyError:
        raise UnknownFormatError(f"No loader registered for {model_format.name}") from None

    logger.debug("Loading %s as %s", path, model_format.name)
    model = loader(path)
    logger.info(
        "Loaded %s: %d meshes, %d vertices, %d materials",
        path.name, len(model.meshes), model.vertex_count, len(model.materials)
    )
    return model


register_format(ModelFormat.OBJ, ['obj'], obj_loader.load_obj)
register_format(ModelFormat.GLTF, ['gltf', 'glb'], gltf_loader.load_gltf)
register_format(ModelFormat.STL, ['stl'], stl_loader.load_stl)
register_format(ModelFormat.PLY, ['ply'], ply_loader.load_ply)
