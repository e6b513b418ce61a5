"""Exception hierarchy for the crop editor."""


class CropEditorError(Exception):
    """Base class for all errors raised by the crop editor."""


class InvalidStateError(CropEditorError):
    """Raised when an operation needs a decoded image and none is loaded yet."""


class DecodeError(CropEditorError):
    """Raised when source bytes cannot be decoded into an image."""


class DegenerateGeometryError(CropEditorError):
    """Raised when a rectangle has no usable area."""
