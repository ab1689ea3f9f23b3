"""
Descriptor value types.

A descriptor is either a flat float32 vector or a composite of named
sub-descriptors. Descriptors are read-only once built: extractors hand
them out and nothing downstream may modify them.

Composite layouts:
    SplitHistogram       (first, second), two independent histograms
                         compared separately and fused
    WarmSceneDescriptor  (warm_fraction, vertical_gradient,
                         edge_density, embedding)
"""

from typing import NamedTuple, Union

import numpy as np

from .errors import ShapeMismatch


def as_flat_vector(values) -> np.ndarray:
    """
    Build a read-only 1-D float32 vector from any array-like.

    Raises:
        ShapeMismatch: If the values are not one-dimensional.
    """
    # np.array copies, so freezing never touches the caller's buffer
    vector = np.array(values, dtype=np.float32)
    if vector.ndim != 1:
        raise ShapeMismatch(
            f"Flat vector must be one-dimensional, got shape {vector.shape}"
        )
    vector.setflags(write=False)
    return vector


class SplitHistogram(NamedTuple):
    """Two histograms of one image, e.g. top/bottom halves or color/texture."""

    first: np.ndarray
    second: np.ndarray


class WarmSceneDescriptor(NamedTuple):
    """Scene statistics plus a deep embedding for warm scene matching."""

    warm_fraction: float
    vertical_gradient: float
    edge_density: float
    embedding: np.ndarray


Descriptor = Union[np.ndarray, SplitHistogram, WarmSceneDescriptor]


def check_same_length(a: np.ndarray, b: np.ndarray) -> None:
    """
    Verify two flat vectors can be compared element-wise.

    Raises:
        ShapeMismatch: If either input is not 1-D or lengths differ.
    """
    if not isinstance(a, np.ndarray) or not isinstance(b, np.ndarray):
        raise ShapeMismatch(
            f"Expected flat vectors, got {type(a).__name__} and "
            f"{type(b).__name__}"
        )
    if a.ndim != 1 or b.ndim != 1:
        raise ShapeMismatch(
            f"Expected 1-D vectors, got shapes {a.shape} and {b.shape}"
        )
    if a.shape[0] != b.shape[0]:
        raise ShapeMismatch(
            f"Vector length {a.shape[0]} doesn't match length {b.shape[0]}"
        )


def check_same_kind(a, b, kind: type) -> None:
    """
    Verify both composite descriptors are of the expected variant.

    Raises:
        ShapeMismatch: If either descriptor is not an instance of kind.
    """
    for d in (a, b):
        if not isinstance(d, kind):
            raise ShapeMismatch(
                f"Expected {kind.__name__}, got {type(d).__name__}"
            )

