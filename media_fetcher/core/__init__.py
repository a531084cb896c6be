from .errors import MediaError, ValidationError

__all__ = ["MediaError", "ValidationError"]
