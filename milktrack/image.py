"""Photo downscaling and JPEG re-encoding using OpenCV."""

from __future__ import annotations

import logging
from datetime import datetime

from .errors import EncodeFailed
from .models import NormalizedImage, RawCapture

logger = logging.getLogger(__name__)


def fit_within(width: int, height: int, max_size: int = 1600) -> tuple[int, int]:
    """Scale (width, height) so neither side exceeds max_size.

    Aspect ratio is preserved; images already small enough are unchanged.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid image size: {width}x{height}")

    if width > height and width > max_size:
        height = max(1, round(height * max_size / width))
        width = max_size
    elif height > max_size:
        width = max(1, round(width * max_size / height))
        height = max_size
    return width, height


def storage_name(owner_id: str, submitted_at: datetime | None = None) -> str:
    """Object path for an uploaded photo: ``{owner}/{epoch millis}.jpg``."""
    moment = submitted_at or datetime.now()
    millis = int(moment.timestamp() * 1000)
    return f"{owner_id}/{millis}.jpg"


class ImageNormalizer:
    """Bound a photo's resolution and recompress it before any upload."""

    def __init__(self, max_size: int = 1600, jpeg_quality: int = 85) -> None:
        self._max_size = max_size
        self._jpeg_quality = jpeg_quality

    def normalize(
        self,
        capture: RawCapture,
        owner_id: str,
        submitted_at: datetime | None = None,
    ) -> NormalizedImage:
        """Decode, downscale and re-encode a captured photo as JPEG.

        Raises:
            EncodeFailed: If the photo cannot be decoded or re-encoded.
                The original bytes are never passed through instead.
        """
        try:
            import cv2
            import numpy as np
        except ImportError:
            raise ImportError(
                "opencv-python is required: pip install opencv-python-headless"
            ) from None

        buf = np.frombuffer(capture.data, dtype=np.uint8)
        try:
            img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
        except cv2.error as e:
            raise EncodeFailed(f"Could not decode {capture.filename}: {e}") from e
        if img is None:
            raise EncodeFailed(
                f"Could not decode {capture.filename} ({capture.mime_type})"
            )

        height, width = img.shape[:2]
        new_width, new_height = fit_within(width, height, self._max_size)

        try:
            if (new_width, new_height) != (width, height):
                img = cv2.resize(
                    img, (new_width, new_height), interpolation=cv2.INTER_AREA
                )
            ok, encoded = cv2.imencode(
                ".jpg", img, [int(cv2.IMWRITE_JPEG_QUALITY), self._jpeg_quality]
            )
        except cv2.error as e:
            raise EncodeFailed(f"Could not re-encode {capture.filename}: {e}") from e
        if not ok:
            raise EncodeFailed(f"Could not re-encode {capture.filename}")

        result = NormalizedImage(
            data=encoded.tobytes(),
            width=new_width,
            height=new_height,
            storage_name=storage_name(owner_id, submitted_at),
        )
        logger.debug(
            "Original size: %.2fKB, Compressed size: %.2fKB (%dx%d -> %dx%d)",
            len(capture.data) / 1024,
            result.size_kb,
            width,
            height,
            new_width,
            new_height,
        )
        return result
