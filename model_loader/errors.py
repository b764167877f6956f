"""
Model loading errors.

Every failure of a load surfaces as one ModelLoadError subclass, so callers
can catch the base class or tell the kinds apart.
"""


class ModelLoadError(Exception):
    """Base exception for model loading errors with helpful messages."""
    pass


class UnknownFormatError(ModelLoadError):
    """Extension is absent or unrecognized, or no loader is registered for it."""
    pass


class FileNotExistsError(ModelLoadError):
    """The given path does not exist."""
    pass


class OpenFileError(ModelLoadError):
    """An existing path could not be opened."""
    pass


class ModelParsingError(ModelLoadError):
    """The geometry file or scene document could not be parsed."""
    pass


class MaterialLoadError(ModelLoadError):
    """A material file or a texture it references could not be loaded.

    Kept apart from ModelParsingError so callers can tell "no usable
    geometry" from "geometry fine, materials broken".
    """
    pass
