from typing import Any, Dict, Optional

from pydantic import BaseModel

from media_fetcher.models.internal import FinalArtifact


class MediaDownloadResponse(BaseModel):
    """Successful acquisition response"""
    success: bool = True
    message: str
    filename: str
    mediaUrl: str
    mediaType: str
    size: int
    method: str
    info: Optional[Dict[str, Any]] = None

    @classmethod
    def from_artifact(cls, artifact: FinalArtifact) -> "MediaDownloadResponse":
        return cls(
            message=artifact.message,
            filename=artifact.filename,
            mediaUrl=artifact.media_url,
            mediaType=artifact.media_kind.value,
            size=artifact.size,
            method=artifact.method.value,
            info=artifact.info,
        )


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
