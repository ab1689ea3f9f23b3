"""
visual_match: content-based image retrieval with hand-designed features.

Ranks a collection of images by visual similarity to a target image
using raw pixel patches, color and texture histograms, or deep
embeddings, each paired with a suitable distance metric.

Modules:
    pipeline       RetrievalPipeline: extractor + metric + ranker
    extractors     Feature extractor variants
    metrics        Distance metric variants
    ranking        Stable top-K / bottom-K ranking
    histograms     Chromaticity, RGB and gradient magnitude histograms
    descriptors    Descriptor value types
    embeddings     CSV embedding source and ONNX embedder
    corpus         Directory enumeration and image decoding
    index          On-disk descriptor index with FAISS search
    programs       The preset matching programs
    cli            Command-line entry points
"""

from .errors import (
    DecodeError, InsufficientImageSize, LookupMiss, ShapeMismatch,
    VisualMatchError,
)
from .extractors import create_extractor
from .metrics import create_metric
from .pipeline import RetrievalPipeline
from .ranking import CorpusEntry, RankedResult, Ranking, rank

__version__ = "1.0.0"

__all__ = [
    "CorpusEntry",
    "DecodeError",
    "InsufficientImageSize",
    "LookupMiss",
    "RankedResult",
    "Ranking",
    "RetrievalPipeline",
    "ShapeMismatch",
    "VisualMatchError",
    "create_extractor",
    "create_metric",
    "rank",
]
