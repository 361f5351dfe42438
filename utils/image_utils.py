"""
Image utility functions
"""

import logging
import cv2
import numpy as np
from datetime import datetime
from pathlib import Path
from typing import Tuple

from core.models import ImageMetadata

logger = logging.getLogger(__name__)


def get_image_metadata(image_path: str) -> ImageMetadata:
    """Collect file and pixel metadata for an image"""
    path = Path(image_path)
    stat = path.stat()

    width = height = None
    img = cv2.imread(str(path))
    if img is not None:
        height, width = img.shape[:2]
    else:
        logger.debug(f"Could not decode {path} to read its dimensions")

    return ImageMetadata(
        path=str(path),
        filename=path.name,
        size_bytes=stat.st_size,
        width=width,
        height=height,
        format=path.suffix[1:].upper() or None,
        created_at=datetime.fromtimestamp(stat.st_ctime).isoformat(),
        modified_at=datetime.fromtimestamp(stat.st_mtime).isoformat(),
    )

def resize_maintain_aspect(image: np.ndarray,
                          target_size: Tuple[int, int]) -> np.ndarray:
    """Shrink image to fit target_size, keeping aspect ratio; never enlarges"""
    h, w = image.shape[:2]
    target_w, target_h = target_size

    scale = min(target_w / w, target_h / h)
    if scale >= 1.0:
        return image
    new_w = max(1, int(w * scale))
    new_h = max(1, int(h * scale))

    return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)

def encode_for_embedding(image_path: str, max_size: int = 512) -> bytes:
    """
    Load an image, fit it inside max_size x max_size and re-encode as PNG

    Falls back to the raw file bytes when OpenCV cannot decode the file
    (e.g. animated GIF or WebP variants it does not support).
    """
    img = cv2.imread(str(image_path))
    if img is None:
        return Path(image_path).read_bytes()

    img = resize_maintain_aspect(img, (max_size, max_size))
    ok, buffer = cv2.imencode('.png', img)
    if not ok:
        return Path(image_path).read_bytes()
    return buffer.tobytes()
