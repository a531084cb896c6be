import copy
from typing import Optional


class MediaError(Exception):
    """Classified acquisition failure carrying its HTTP status"""
    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def with_context(self, message: str) -> "MediaError":
        """Same failure kind and status, new user-facing message"""
        error = copy.copy(self)
        error.args = (message,)
        error.message = message
        error.__cause__ = self
        return error


class ValidationError(MediaError):
    status_code = 400


class BlockedUrl(MediaError):
    status_code = 403


class UpstreamAuthError(MediaError):
    status_code = 400


class RateLimited(MediaError):
    status_code = 429


class NoVideoInPost(MediaError):
    """The post only holds images; triggers the image path, never surfaced as-is"""
    status_code = 400


class ExtractionFailure(MediaError):
    status_code = 502


class ExtractionTimeout(ExtractionFailure):
    pass


class ImageExtractionFailure(MediaError):
    status_code = 502


class ArtifactNotFound(MediaError):
    status_code = 502


class EmptyArtifact(MediaError):
    status_code = 502


class DirectFetchFailure(MediaError):
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class RequestCancelled(MediaError):
    status_code = 499


class InternalError(MediaError):
    status_code = 500
