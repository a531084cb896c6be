from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class AcquisitionRequest(BaseModel):
    """Internal acquisition intent (separated from HTTP concerns)"""
    model_config = ConfigDict(frozen=True)

    url: str
    prefer_video: bool = True
    download_images_only: bool = False
    use_extraction_tool: bool = True


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class Multiplicity(str, Enum):
    SINGLE = "single"
    SEQUENCE = "sequence"


class MediaDescriptor(BaseModel):
    """Metadata reported by yt-dlp before downloading"""
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    ext: Optional[str] = None
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[float] = None
    filesize: Optional[int] = None
    format_id: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    type: Optional[str] = None
    multiplicity: Multiplicity = Multiplicity.SINGLE

    @classmethod
    def from_info(cls, info: Dict[str, Any], multiplicity: Multiplicity = Multiplicity.SINGLE) -> "MediaDescriptor":
        return cls(
            url=info.get("url"),
            ext=info.get("ext"),
            title=info.get("title"),
            thumbnail=info.get("thumbnail"),
            duration=info.get("duration"),
            filesize=_as_int(info.get("filesize") or info.get("filesize_approx")),
            format_id=_as_str(info.get("format_id")),
            width=_as_int(info.get("width")),
            height=_as_int(info.get("height")),
            type=info.get("_type"),
            multiplicity=multiplicity,
        )


class CapabilitySnapshot(BaseModel):
    """Which external tools are usable for this request"""
    model_config = ConfigDict(frozen=True)

    extraction_tool: bool = False
    merge_tool: bool = False
    extraction_tool_version: Optional[str] = None
    merge_tool_version: Optional[str] = None


class FormatSpec(BaseModel):
    """Ordered yt-dlp format preference chain"""
    model_config = ConfigDict(frozen=True)

    chain: Tuple[str, ...]
    merge: bool = False

    @property
    def selector(self) -> str:
        return "/".join(self.chain)


class StagedArtifact(BaseModel):
    """Downloaded file still sitting in the request's scratch directory"""
    path: str
    descriptor: Optional[MediaDescriptor] = None


class MediaKind(str, Enum):
    VIDEO = "video"
    IMAGE = "image"


class AcquisitionMethod(str, Enum):
    TOOL_VIDEO = "yt-dlp"
    TOOL_IMAGE = "yt-dlp-image"
    DIRECT = "direct"


class FinalArtifact(BaseModel):
    """Published result of a successful acquisition"""
    filename: str
    media_url: str
    media_kind: MediaKind
    size: int
    method: AcquisitionMethod
    message: str = "Media downloaded successfully"
    info: Optional[Dict[str, Any]] = None
