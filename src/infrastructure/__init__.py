"""Infrastructure layer - external service implementations.

The factory lives in ``src.infrastructure.factory`` and is imported from
there directly, since it wires application services together.
"""

from src.infrastructure.video_host import (
    HttpVideoHostClient,
    UploadResult,
    VideoHostBase,
    normalize_quota,
)

__all__ = [
    # Video host
    "VideoHostBase",
    "UploadResult",
    "HttpVideoHostClient",
    "normalize_quota",
]
