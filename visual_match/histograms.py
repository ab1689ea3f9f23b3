"""
Color and texture histograms.

Three histogram families, all returned as read-only float32 vectors
normalized to a probability mass function:

    chromaticity_histogram        2-D rg chromaticity, bins**2 cells
    rgb_histogram                 3-D RGB over a row region, bins**3 cells
    gradient_magnitude_histogram  1-D Sobel magnitude, bins cells

Binning is vectorized with numpy; cell indices are linearized so the
first channel varies slowest.
"""

import logging

import cv2
import numpy as np

from . import config
from .descriptors import as_flat_vector
from .preprocessing import normalize_image, region_rows, to_intensity

logger = logging.getLogger(__name__)


def _check_bins(bins: int, upper: int = None) -> None:
    if bins < 1:
        raise ValueError(f"Bin count must be positive, got {bins}")
    if upper is not None and bins > upper:
        raise ValueError(f"Bin count must be at most {upper}, got {bins}")


def _normalized_counts(indices: np.ndarray, size: int,
                       total: int) -> np.ndarray:
    counts = np.bincount(indices.ravel(), minlength=size).astype(np.float64)
    if total > 0:
        counts /= total
    return as_flat_vector(counts)


def chromaticity_histogram(image_np: np.ndarray,
                           bins: int = None,
                           min_intensity: float = None) -> np.ndarray:
    """
    Compute a 2-D rg chromaticity histogram.

    Each pixel with R+G+B >= min_intensity contributes its normalized
    chromaticity r = R/(R+G+B), g = G/(R+G+B). Dark pixels are excluded
    from both the counts and the normalizing total, so an all-black
    image produces an all-zero histogram.

    Args:
        image_np: RGB uint8 image.
        bins: Bins per chromaticity axis (default CHROMA_BINS).
        min_intensity: Channel sum below which a pixel is ignored.

    Returns:
        Float32 vector of bins * bins cells, index r_bin * bins + g_bin.
    """
    bins = config.CHROMA_BINS if bins is None else bins
    min_intensity = config.MIN_INTENSITY if min_intensity is None else min_intensity
    _check_bins(bins)

    rgb = normalize_image(image_np).reshape(-1, 3).astype(np.float64)
    intensity = rgb.sum(axis=1)
    mask = intensity >= min_intensity
    contributing = int(np.count_nonzero(mask))

    if contributing == 0:
        return as_flat_vector(np.zeros(bins * bins))

    r_hat = rgb[mask, 0] / intensity[mask]
    g_hat = rgb[mask, 1] / intensity[mask]

    r_bin = np.clip(np.floor(r_hat * bins).astype(np.int64), 0, bins - 1)
    g_bin = np.clip(np.floor(g_hat * bins).astype(np.int64), 0, bins - 1)

    return _normalized_counts(r_bin * bins + g_bin, bins * bins, contributing)


def rgb_histogram(image_np: np.ndarray,
                  bins: int = None,
                  region: str = "whole") -> np.ndarray:
    """
    Compute a 3-D RGB histogram over a row region of the image.

    Each channel is quantized into equal-width bins with
    floor(c * bins / 256). An empty region yields all zeros.

    Args:
        image_np: RGB uint8 image.
        bins: Bins per channel (default RGB_BINS).
        region: "whole", "top" or "bottom".

    Returns:
        Float32 vector of bins**3 cells, index r*bins*bins + g*bins + b.
    """
    bins = config.RGB_BINS if bins is None else bins
    _check_bins(bins, upper=256)

    image_np = normalize_image(image_np)
    start, end = region_rows(image_np.shape[0], region)
    pixels = image_np[start:end].reshape(-1, 3).astype(np.int64)

    quantized = np.minimum((pixels * bins) // 256, bins - 1)
    indices = (quantized[:, 0] * bins * bins
               + quantized[:, 1] * bins
               + quantized[:, 2])

    return _normalized_counts(indices, bins ** 3, pixels.shape[0])


def gradient_magnitude_histogram(image_np: np.ndarray,
                                 bins: int = None) -> np.ndarray:
    """
    Compute a histogram of Sobel gradient magnitudes.

    Magnitudes sqrt(gx**2 + gy**2) from 3x3 Sobel filters on the
    intensity image are binned over [0, max]. A uniform image has
    max == 0; every pixel then falls into bin 0.

    Args:
        image_np: RGB uint8 image.
        bins: Number of magnitude bins (default TEXTURE_BINS).

    Returns:
        Float32 vector of bins cells.
    """
    bins = config.TEXTURE_BINS if bins is None else bins
    _check_bins(bins)

    gray = to_intensity(normalize_image(image_np))
    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(gx, gy).astype(np.float64)

    max_magnitude = float(magnitude.max()) if magnitude.size else 0.0
    if max_magnitude > 0:
        indices = np.floor(magnitude / max_magnitude * bins).astype(np.int64)
        indices = np.clip(indices, 0, bins - 1)
    else:
        indices = np.zeros(magnitude.shape, dtype=np.int64)

    return _normalized_counts(indices, bins, magnitude.size)
