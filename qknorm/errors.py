class QKNormError(Exception):
    """Base class for errors raised by qknorm."""


class ConfigurationError(QKNormError, ValueError):
    """Layer configuration is invalid. Raised at construction or setup."""


class ShapeMismatchError(QKNormError, ValueError):
    """An input shape disagrees with the shape the layer was configured for."""
