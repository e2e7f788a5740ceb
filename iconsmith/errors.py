"""Exception types raised by the icon pipeline."""


class IconsmithError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(IconsmithError):
    """Input bytes could not be decoded into a pixel buffer."""


class EmptyContentError(IconsmithError):
    """A buffer has no opaque content to work with.

    Segmentation and normalization catch this and hand back the unmodified
    (or blank) buffer instead of failing the asset.
    """


class ExternalServiceError(IconsmithError):
    """The image generation collaborator failed or returned garbage."""

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        base = super().__str__()
        if self.hint:
            return f"{base} ({self.hint})"
        return base
