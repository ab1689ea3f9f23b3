"""
Distance metrics between descriptors.

Every metric is a callable ``metric(a, b) -> float`` where lower means
more similar. Incompatible descriptors raise ShapeMismatch; no metric
ever returns a sentinel value to signal failure.

Variants:
    ssd           sum of squared differences
    intersection  1 - sum(min(a, b)) over normalized histograms
    cosine        1 - cos(theta), range [0, 2]
    fused         weighted histogram intersection over a SplitHistogram
    warm_scene    weighted scene statistics + cosine over embeddings

Sums accumulate in float64 even though descriptors are float32.
"""

import logging
from typing import Dict

import numpy as np

from . import config
from .descriptors import (
    SplitHistogram, WarmSceneDescriptor, check_same_kind, check_same_length,
)

logger = logging.getLogger(__name__)


def sum_squared_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Sum of squared element differences."""
    check_same_length(a, b)
    diff = a.astype(np.float64) - b.astype(np.float64)
    return float(np.dot(diff, diff))


def histogram_intersection_distance(a: np.ndarray, b: np.ndarray) -> float:
    """
    One minus the histogram intersection.

    In [0, 1] when both inputs are probability mass functions; 0 for
    identical histograms.
    """
    check_same_length(a, b)
    intersection = np.minimum(a.astype(np.float64), b.astype(np.float64)).sum()
    return float(1.0 - intersection)


def _l2_normalize(vector: np.ndarray) -> np.ndarray:
    vector = vector.astype(np.float64)
    norm = np.linalg.norm(vector)
    if norm > 0:
        return vector / norm
    return vector


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine distance 1 - cos(theta) after L2 normalization.

    A zero vector stays zero, giving a distance of 1 against anything.
    The dot product is clamped to [-1, 1] to absorb rounding overshoot.
    """
    check_same_length(a, b)
    cos_theta = float(np.dot(_l2_normalize(a), _l2_normalize(b)))
    cos_theta = min(1.0, max(-1.0, cos_theta))
    return 1.0 - cos_theta


class DistanceMetric:
    """Base class for descriptor metrics."""

    name = "base"

    def distance(self, a, b) -> float:
        raise NotImplementedError

    def __call__(self, a, b) -> float:
        return self.distance(a, b)

    def __repr__(self):
        return f"{type(self).__name__}()"


class SumSquaredDistance(DistanceMetric):
    name = "ssd"

    def distance(self, a, b):
        return sum_squared_distance(a, b)


class HistogramIntersectionDistance(DistanceMetric):
    name = "intersection"

    def distance(self, a, b):
        return histogram_intersection_distance(a, b)


class CosineDistance(DistanceMetric):
    name = "cosine"

    def distance(self, a, b):
        return cosine_distance(a, b)


class FusedHistogramDistance(DistanceMetric):
    """
    Weighted sum of two independent histogram intersection distances.

    Compares first-with-first and second-with-second of two
    SplitHistogram descriptors. With equal 0.5 weights this is one minus
    the mean intersection.
    """

    name = "fused"

    def __init__(self, weight_a: float = None, weight_b: float = None):
        self.weight_a = config.FUSED_WEIGHT_A if weight_a is None else weight_a
        self.weight_b = config.FUSED_WEIGHT_B if weight_b is None else weight_b

    def distance(self, a, b):
        check_same_kind(a, b, SplitHistogram)
        d_first = histogram_intersection_distance(a.first, b.first)
        d_second = histogram_intersection_distance(a.second, b.second)
        return float(self.weight_a * d_first + self.weight_b * d_second)

    def __repr__(self):
        return (f"FusedHistogramDistance(weight_a={self.weight_a}, "
                f"weight_b={self.weight_b})")


class WeightedSceneDistance(DistanceMetric):
    """
    Linear combination of warm scene statistics and embedding distance.

        warm * |warm_a - warm_b|
        + gradient * |grad_a - grad_b| / gradient_scale
        + edge * |edge_a - edge_b|
        + embedding * cosine(emb_a, emb_b)

    gradient_scale brings the unbounded gradient difference into a range
    comparable with the other terms. Weights and scale are empirical.
    """

    name = "warm_scene"

    def __init__(self,
                 warm: float = None,
                 gradient: float = None,
                 edge: float = None,
                 embedding: float = None,
                 gradient_scale: float = None):
        weights = config.WARM_SCENE_WEIGHTS
        self.warm = weights["warm"] if warm is None else warm
        self.gradient = weights["gradient"] if gradient is None else gradient
        self.edge = weights["edge"] if edge is None else edge
        self.embedding = weights["embedding"] if embedding is None else embedding
        self.gradient_scale = (config.GRADIENT_SCALE if gradient_scale is None
                               else gradient_scale)
        if self.gradient_scale <= 0:
            raise ValueError(
                f"gradient_scale must be positive, got {self.gradient_scale}"
            )

    def distance(self, a, b):
        check_same_kind(a, b, WarmSceneDescriptor)
        warm_diff = abs(a.warm_fraction - b.warm_fraction)
        grad_diff = abs(a.vertical_gradient - b.vertical_gradient)
        edge_diff = abs(a.edge_density - b.edge_density)
        embedding_dist = cosine_distance(a.embedding, b.embedding)

        return float(
            self.warm * warm_diff
            + self.gradient * (grad_diff / self.gradient_scale)
            + self.edge * edge_diff
            + self.embedding * embedding_dist
        )

    def __repr__(self):
        return (f"WeightedSceneDistance(warm={self.warm}, "
                f"gradient={self.gradient}, edge={self.edge}, "
                f"embedding={self.embedding}, "
                f"gradient_scale={self.gradient_scale})")


METRICS: Dict[str, type] = {
    cls.name: cls for cls in (
        SumSquaredDistance,
        HistogramIntersectionDistance,
        CosineDistance,
        FusedHistogramDistance,
        WeightedSceneDistance,
    )
}


def create_metric(name: str, **params) -> DistanceMetric:
    """
    Build a metric variant by name.

    Raises:
        ValueError: If name is not a known metric.
    """
    try:
        cls = METRICS[name]
    except KeyError:
        raise ValueError(
            f"Unknown metric '{name}', expected one of {sorted(METRICS)}"
        ) from None
    return cls(**params)
