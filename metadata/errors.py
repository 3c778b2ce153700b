class MetadataError(RuntimeError):
    """Base error type for metadata acquisition."""


class SourceUnavailable(MetadataError):
    """A source answered with a non-200 status, timed out or was unreachable."""


class NotAnItemPage(MetadataError):
    """A 200 page that carries no work title."""
