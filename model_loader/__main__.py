"""
Command-line summary: python -m model_loader path/to/model.glb
"""

import argparse
import logging
import sys

from .errors import ModelLoadError
from .loader import load_model
from .logging_config import setup_logging
from .model import ModelFormat


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="model_loader",
        description="Load a 3D model and print a summary of its meshes and materials."
    )
    parser.add_argument("path", help="Model file (.gltf, .glb, .obj, .stl, .ply)")
    parser.add_argument("--format", choices=[f.value for f in ModelFormat],
                        help="Skip extension detection and load as this format")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write the log to this file")
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    model_format = ModelFormat(args.format) if args.format else None
    try:
        model = load_model(args.path, model_format)
    except ModelLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Format: {model.format.name}")
    print(f"Meshes: {len(model.meshes)}")
    for i, mesh in enumerate(model.meshes):
        if mesh.indices is not None:
            index_info = f"{len(mesh.indices)} indices ({mesh.indices.width.name})"
        else:
            index_info = "no indices"
        print(f"  [{i}] {mesh.name or '<unnamed>'}: {len(mesh.vertices)} vertices, "
              f"{index_info}, {mesh.mode.name}, material {mesh.material_index}")
    print(f"Materials: {len(model.materials)}")
    for i, material in enumerate(model.materials):
        texture = material.diffuse_texture
        texture_info = f", texture {texture.image}" if texture is not None else ""
        print(f"  [{i}] {material.name or 'Unknown'}{texture_info}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
