"""
Image helpers shared by the feature extractors.

Handles dtype/channel normalization, row regions, the strict center
window used by the patch extractor, and the Canny-based edge density
primitive. Images are RGB uint8 arrays of shape (rows, cols, 3).
"""

import logging
from typing import Tuple

import cv2
import numpy as np

from . import config
from .errors import InsufficientImageSize

logger = logging.getLogger(__name__)

REGIONS = ("whole", "top", "bottom")


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8 RGB with exactly three channels."""
    image_np = np.asarray(image_np)
    if image_np.dtype != np.uint8:
        if image_np.size and image_np.max() <= 1.0:
            image_np = (image_np * 255).astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)

    if image_np.ndim == 2:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGB)
    elif image_np.ndim == 3 and image_np.shape[2] == 4:
        image_np = image_np[:, :, :3]

    if image_np.ndim != 3 or image_np.shape[2] != 3:
        raise ValueError(f"Expected an RGB image, got shape {image_np.shape}")
    return image_np


def require_size(image_np: np.ndarray, min_rows: int = 1,
                 min_cols: int = 1) -> None:
    """
    Check the image has at least min_rows x min_cols pixels.

    Raises:
        InsufficientImageSize: If the image is smaller.
    """
    rows, cols = image_np.shape[:2]
    if rows < min_rows or cols < min_cols:
        raise InsufficientImageSize(
            f"Image of {rows}x{cols} pixels is smaller than the required "
            f"{min_rows}x{min_cols}"
        )


def to_intensity(image_np: np.ndarray) -> np.ndarray:
    """Convert an RGB image to a single-channel uint8 intensity image."""
    return cv2.cvtColor(image_np, cv2.COLOR_RGB2GRAY)


def region_rows(rows: int, region: str) -> Tuple[int, int]:
    """
    Row range [start, end) of a named image region.

    The top half is rows [0, rows // 2), the bottom half the rest.
    """
    mid = rows // 2
    if region == "whole":
        return 0, rows
    if region == "top":
        return 0, mid
    if region == "bottom":
        return mid, rows
    raise ValueError(f"Unknown region '{region}', expected one of {REGIONS}")


def extract_center_window(image_np: np.ndarray, size: int) -> np.ndarray:
    """
    Extract the size x size block centered on (rows // 2, cols // 2).

    Unlike a clamped crop, the window is never shifted to fit: a window
    that leaves the image is an error.

    Raises:
        InsufficientImageSize: If any part of the window is out of bounds.
    """
    if size < 1:
        raise ValueError(f"Patch size must be positive, got {size}")

    rows, cols = image_np.shape[:2]
    half = size // 2
    y1 = rows // 2 - half
    x1 = cols // 2 - half
    y2 = y1 + size
    x2 = x1 + size

    if y1 < 0 or x1 < 0 or y2 > rows or x2 > cols:
        raise InsufficientImageSize(
            f"{size}x{size} center window doesn't fit in a "
            f"{rows}x{cols} image"
        )
    return image_np[y1:y2, x1:x2]


def canny_edge_fraction(image_np: np.ndarray,
                        low: int = None,
                        high: int = None) -> float:
    """
    Fraction of pixels marked as edges by the Canny detector.

    Args:
        image_np: RGB uint8 image.
        low: Lower hysteresis threshold (default CANNY_LOW).
        high: Upper hysteresis threshold (default CANNY_HIGH).

    Returns:
        Edge pixel share in [0, 1].
    """
    low = config.CANNY_LOW if low is None else low
    high = config.CANNY_HIGH if high is None else high

    gray = to_intensity(image_np)
    if gray.size == 0:
        return 0.0
    edges = cv2.Canny(gray, low, high)
    return float(np.count_nonzero(edges)) / edges.size
