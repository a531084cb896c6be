from .internal import AcquisitionRequest, CapabilitySnapshot, FinalArtifact, MediaDescriptor, StagedArtifact
from .request import MediaDownloadRequest
from .response import ErrorResponse, MediaDownloadResponse

__all__ = [
    "AcquisitionRequest",
    "CapabilitySnapshot",
    "ErrorResponse",
    "FinalArtifact",
    "MediaDescriptor",
    "MediaDownloadRequest",
    "MediaDownloadResponse",
    "StagedArtifact",
]
