from typing import Optional

from pydantic import BaseModel, Field

from media_fetcher.core.errors import ValidationError
from media_fetcher.models.internal import AcquisitionRequest


class MediaDownloadRequest(BaseModel):
    # Field names follow the public JSON contract
    url: Optional[str] = Field(None, description="Post or media URL")
    useYtDlp: bool = Field(True, description="Try yt-dlp before the direct fetch")
    downloadImages: bool = Field(False, description="Go to image extraction when the video path fails")

    def to_intent(self) -> AcquisitionRequest:
        """Convert to acquisition intent, rejecting a missing URL"""
        url = (self.url or "").strip()
        if not url:
            raise ValidationError("URL is required")

        return AcquisitionRequest(
            url=url,
            prefer_video=not self.downloadImages,
            download_images_only=self.downloadImages,
            use_extraction_tool=self.useYtDlp,
        )
