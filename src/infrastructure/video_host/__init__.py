"""External video host integration."""

from src.infrastructure.video_host.base import UploadResult, VideoHostBase
from src.infrastructure.video_host.http_client import HttpVideoHostClient
from src.infrastructure.video_host.quota import normalize_quota

__all__ = [
    "VideoHostBase",
    "UploadResult",
    "HttpVideoHostClient",
    "normalize_quota",
]
