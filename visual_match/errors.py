"""
Error kinds raised by the retrieval pipeline.

Per-entry failures (a corpus image that will not decode, a missing
embedding, a descriptor of the wrong shape) are caught by the pipeline
and the entry is skipped. The same errors raised for the target image
propagate to the caller.
"""


class VisualMatchError(Exception):
    """Base class for all retrieval errors."""


class DecodeError(VisualMatchError):
    """An image file could not be loaded or decoded."""

    def __init__(self, path, detail: str = None):
        self.path = str(path)
        message = f"Could not decode image: {self.path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ShapeMismatch(VisualMatchError, ValueError):
    """Two descriptors being compared have incompatible shapes."""


class LookupMiss(VisualMatchError, KeyError):
    """An expected embedding is absent from the embedding source."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(identifier)

    def __str__(self):
        return f"No embedding found for '{self.identifier}'"


class InsufficientImageSize(VisualMatchError, ValueError):
    """The extractor's sampling window does not fit inside the image."""


class FeatureSourceError(VisualMatchError):
    """A feature source (embedding CSV, descriptor index) is malformed."""


class ModelLoadError(VisualMatchError):
    """A network model could not be loaded."""
