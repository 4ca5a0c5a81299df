"""Exceptions and warnings raised by lamfbp."""


class ShapeMismatch(ValueError):
    """Sinogram, geometry or mask dimensions are inconsistent with the config."""


class InvalidFilterKind(ValueError):
    """Unrecognized FBP filter name."""


class MissingWedgeWarning(UserWarning):
    """Angular sampling contains a gap much larger than the typical spacing."""
