"""Exceptions métier du moteur de segmentation."""


class SegmentationError(Exception):
    """Base class for engine errors."""


class PreconditionError(SegmentationError):
    """An operation was requested while its prerequisites are missing."""


class ColormapError(SegmentationError):
    """A colormap resource could not be fetched or parsed."""


class InferenceError(SegmentationError):
    """An inference run failed or ended without a result."""
