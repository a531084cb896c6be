from typing import Optional

from media_fetcher.config.settings import config
from media_fetcher.models.internal import CapabilitySnapshot, FormatSpec, MediaDescriptor

IMAGE_EXTENSIONS = frozenset({"jpg", "png", "webp"})


class FormatDecision:
    """Make format decisions"""

    @staticmethod
    def is_image(descriptor: Optional[MediaDescriptor]) -> bool:
        return bool(descriptor and descriptor.ext and descriptor.ext.lower() in IMAGE_EXTENSIONS)

    @staticmethod
    def select(
        descriptor: Optional[MediaDescriptor],
        capabilities: CapabilitySnapshot,
        max_height: Optional[int] = None
    ) -> FormatSpec:
        """Decide the yt-dlp format chain for a descriptor and the tools at hand"""
        if FormatDecision.is_image(descriptor):
            # Still images need no stream selection or merging
            return FormatSpec(chain=("best",))

        height = max_height or config.tools.max_height

        if capabilities.merge_tool:
            return FormatSpec(
                chain=(
                    f"bestvideo[height<={height}][ext=mp4]+bestaudio[ext=m4a]",
                    f"bestvideo[height<={height}]+bestaudio",
                    f"best[height<={height}]",
                    "best",
                ),
                merge=True,
            )

        # Without ffmpeg a separate video stream would end up silent
        return FormatSpec(chain=(f"best[height<={height}]", "best"))
