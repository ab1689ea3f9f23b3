"""
Feature extractors.

Every extractor reduces one image (or a precomputed embedding looked up
by image identifier) to a fixed-shape descriptor through the same call:

    descriptor = extractor.extract(image, identifier)

Variants:
    center_patch        raw 7x7 RGB block at the image center
    chromaticity        rg chromaticity histogram
    region_rgb          RGB histogram over whole / top / bottom rows
    split_rgb           top and bottom RGB histograms (SplitHistogram)
    gradient            Sobel gradient magnitude histogram
    texture_color       whole-image RGB + gradient magnitude (SplitHistogram)
    embedding           precomputed embedding pass-through
    live_embedding      embedding computed by a network on each image
    warm_scene          warm color, vertical gradient, edge density and
                        embedding (WarmSceneDescriptor)

All parameters are constructor arguments; config only supplies defaults.
"""

import logging
from typing import Callable, Dict, Optional

import numpy as np

from . import config
from .descriptors import (
    Descriptor, SplitHistogram, WarmSceneDescriptor, as_flat_vector,
)
from .embeddings import EmbeddingSource
from .histograms import (
    chromaticity_histogram, gradient_magnitude_histogram, rgb_histogram,
)
from .preprocessing import (
    REGIONS, canny_edge_fraction, extract_center_window, normalize_image,
    require_size,
)

logger = logging.getLogger(__name__)


class FeatureExtractor:
    """Base class: image (and identifier) in, descriptor out."""

    name = "base"
    # False when the descriptor comes from a feature source, not pixels
    needs_pixels = True

    def extract(self, image: Optional[np.ndarray],
                identifier: Optional[str] = None) -> Descriptor:
        raise NotImplementedError

    def __call__(self, image, identifier=None) -> Descriptor:
        return self.extract(image, identifier)

    def __repr__(self):
        params = ", ".join(f"{k}={v!r}" for k, v in self.params().items())
        return f"{type(self).__name__}({params})"

    def params(self) -> dict:
        return {}

    def _prepare(self, image, min_rows: int = 1, min_cols: int = 1):
        if image is None:
            raise ValueError(f"{self.name} extractor needs pixel data")
        image = normalize_image(image)
        require_size(image, min_rows, min_cols)
        return image


class CenterPatchExtractor(FeatureExtractor):
    """Flattened size x size RGB block centered on the image."""

    name = "center_patch"

    def __init__(self, size: int = None):
        self.size = config.PATCH_SIZE if size is None else size
        if self.size < 1:
            raise ValueError(f"Patch size must be positive, got {self.size}")

    def params(self):
        return {"size": self.size}

    def extract(self, image, identifier=None):
        image = self._prepare(image)
        patch = extract_center_window(image, self.size)
        return as_flat_vector(patch.reshape(-1))


class ChromaticityHistogramExtractor(FeatureExtractor):
    name = "chromaticity"

    def __init__(self, bins: int = None, min_intensity: float = None):
        self.bins = config.CHROMA_BINS if bins is None else bins
        self.min_intensity = (config.MIN_INTENSITY if min_intensity is None
                              else min_intensity)

    def params(self):
        return {"bins": self.bins, "min_intensity": self.min_intensity}

    def extract(self, image, identifier=None):
        image = self._prepare(image)
        return chromaticity_histogram(image, self.bins, self.min_intensity)


class RegionHistogramExtractor(FeatureExtractor):
    """RGB histogram over one row region: whole image, top or bottom half."""

    name = "region_rgb"

    def __init__(self, bins: int = None, region: str = "whole"):
        if region not in REGIONS:
            raise ValueError(f"Unknown region '{region}', expected one of {REGIONS}")
        self.bins = config.RGB_BINS if bins is None else bins
        self.region = region

    def params(self):
        return {"bins": self.bins, "region": self.region}

    def extract(self, image, identifier=None):
        # Halves need at least one row each
        min_rows = 1 if self.region == "whole" else 2
        image = self._prepare(image, min_rows=min_rows)
        return rgb_histogram(image, self.bins, self.region)


class SplitRegionHistogramExtractor(FeatureExtractor):
    """Top-half and bottom-half RGB histograms, compared independently."""

    name = "split_rgb"

    def __init__(self, bins: int = None):
        self.bins = config.RGB_BINS if bins is None else bins

    def params(self):
        return {"bins": self.bins}

    def extract(self, image, identifier=None):
        image = self._prepare(image, min_rows=2)
        return SplitHistogram(
            first=rgb_histogram(image, self.bins, "top"),
            second=rgb_histogram(image, self.bins, "bottom"),
        )


class GradientHistogramExtractor(FeatureExtractor):
    """Histogram of Sobel gradient magnitudes (texture only)."""

    name = "gradient"

    def __init__(self, bins: int = None):
        self.bins = config.TEXTURE_BINS if bins is None else bins

    def params(self):
        return {"bins": self.bins}

    def extract(self, image, identifier=None):
        image = self._prepare(image)
        return gradient_magnitude_histogram(image, self.bins)


class TextureColorExtractor(FeatureExtractor):
    """Whole-image RGB histogram paired with a gradient magnitude histogram."""

    name = "texture_color"

    def __init__(self, color_bins: int = None, texture_bins: int = None):
        self.color_bins = config.RGB_BINS if color_bins is None else color_bins
        self.texture_bins = (config.TEXTURE_BINS if texture_bins is None
                             else texture_bins)

    def params(self):
        return {"color_bins": self.color_bins, "texture_bins": self.texture_bins}

    def extract(self, image, identifier=None):
        image = self._prepare(image)
        return SplitHistogram(
            first=rgb_histogram(image, self.color_bins, "whole"),
            second=gradient_magnitude_histogram(image, self.texture_bins),
        )


class EmbeddingExtractor(FeatureExtractor):
    """
    Pass-through of a precomputed embedding.

    The descriptor is looked up by exact identifier; pixels are ignored.
    A missing entry raises LookupMiss.
    """

    name = "embedding"
    needs_pixels = False

    def __init__(self, source: EmbeddingSource):
        self.source = source

    def params(self):
        return {"entries": len(self.source)}

    def extract(self, image, identifier=None):
        if identifier is None:
            raise ValueError("Embedding lookup needs an image identifier")
        return self.source.lookup(identifier)


class LiveEmbeddingExtractor(FeatureExtractor):
    """Embedding computed on the fly by an image -> vector callable."""

    name = "live_embedding"

    def __init__(self, embedder: Callable[[np.ndarray], np.ndarray]):
        self.embedder = embedder

    def params(self):
        return {"embedder": type(self.embedder).__name__}

    def extract(self, image, identifier=None):
        image = self._prepare(image)
        return as_flat_vector(np.asarray(self.embedder(image)).ravel())


def warm_fraction(image_np: np.ndarray,
                  region: float = None,
                  min_red: float = None,
                  red_ratio: float = None) -> float:
    """
    Share of warm pixels in the upper part of the image.

    A pixel is warm when R > G >= B, R > min_red and R > red_ratio * G.
    Only the first int(rows * region) rows are considered.
    """
    region = config.WARM_REGION if region is None else region
    min_red = config.WARM_MIN_RED if min_red is None else min_red
    red_ratio = config.WARM_RED_RATIO if red_ratio is None else red_ratio

    end_row = int(image_np.shape[0] * region)
    upper = image_np[:end_row].astype(np.float64)
    if upper.size == 0:
        return 0.0

    r, g, b = upper[:, :, 0], upper[:, :, 1], upper[:, :, 2]
    warm = (r > g) & (g >= b) & (r > min_red) & (r > red_ratio * g)
    return float(np.count_nonzero(warm)) / (upper.shape[0] * upper.shape[1])


def vertical_gradient(image_np: np.ndarray) -> float:
    """
    Warm-to-cool transition between the top and bottom thirds.

    (meanR_top - meanR_bottom) + 0.5 * (meanG_top - meanG_bottom)
    """
    rows = image_np.shape[0]
    top = image_np[:rows // 3].reshape(-1, 3).astype(np.float64)
    bottom = image_np[(2 * rows) // 3:].reshape(-1, 3).astype(np.float64)

    top_mean = top.mean(axis=0)
    bottom_mean = bottom.mean(axis=0)
    return float((top_mean[0] - bottom_mean[0])
                 + 0.5 * (top_mean[1] - bottom_mean[1]))


class WarmSceneExtractor(FeatureExtractor):
    """
    Scene statistics tuned for sunsets and other warm scenes.

    Combines the warm pixel share of the upper image, the vertical color
    gradient, the edge density and a precomputed deep embedding.
    """

    name = "warm_scene"

    def __init__(self,
                 source: EmbeddingSource,
                 edge_fraction: Callable[[np.ndarray], float] = None,
                 warm_region: float = None):
        self.source = source
        self.edge_fraction = edge_fraction or canny_edge_fraction
        self.warm_region = config.WARM_REGION if warm_region is None else warm_region

    def params(self):
        return {"entries": len(self.source), "warm_region": self.warm_region}

    def extract(self, image, identifier=None):
        if identifier is None:
            raise ValueError("Warm scene extraction needs an image identifier")
        # Thirds must be non-empty for the gradient means
        image = self._prepare(image, min_rows=3)
        embedding = self.source.lookup(identifier)

        return WarmSceneDescriptor(
            warm_fraction=warm_fraction(image, self.warm_region),
            vertical_gradient=vertical_gradient(image),
            edge_density=float(self.edge_fraction(image)),
            embedding=embedding,
        )


EXTRACTORS: Dict[str, type] = {
    cls.name: cls for cls in (
        CenterPatchExtractor,
        ChromaticityHistogramExtractor,
        RegionHistogramExtractor,
        SplitRegionHistogramExtractor,
        GradientHistogramExtractor,
        TextureColorExtractor,
        EmbeddingExtractor,
        LiveEmbeddingExtractor,
        WarmSceneExtractor,
    )
}


def create_extractor(name: str, **params) -> FeatureExtractor:
    """
    Build an extractor variant by name.

    Raises:
        ValueError: If name is not a known extractor.
    """
    try:
        cls = EXTRACTORS[name]
    except KeyError:
        raise ValueError(
            f"Unknown extractor '{name}', expected one of {sorted(EXTRACTORS)}"
        ) from None
    return cls(**params)
