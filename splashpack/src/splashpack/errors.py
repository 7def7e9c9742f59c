"""Exception types shared across the exporter."""


class SplashpackError(Exception):
    """Base class for exporter errors."""


class InputError(SplashpackError):
    """Raised when a scene object references a missing mesh or texture."""


class SerializationInvariantError(SplashpackError):
    """Raised when offset placeholders and data blocks disagree."""
