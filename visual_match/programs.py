"""
The matching programs.

Each program is a named pairing of one extractor and one metric:

    baseline          7x7 center patch          sum of squared differences
    histogram         16x16 rg chromaticity     histogram intersection
    multi-histogram   top/bottom 8x8x8 RGB      fused intersection
    texture-color     RGB + gradient magnitude  fused intersection
    deep-embedding    precomputed embedding     cosine
    live-dnn          ONNX embedding            cosine
    warm-scene        warm scene statistics     weighted scene distance

Programs differ in their feature source: none, an embedding CSV, or an
ONNX model.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from . import config
from .embeddings import CsvEmbeddingSource, OnnxEmbedder
from .extractors import (
    CenterPatchExtractor, ChromaticityHistogramExtractor, EmbeddingExtractor,
    LiveEmbeddingExtractor, SplitRegionHistogramExtractor,
    TextureColorExtractor, WarmSceneExtractor,
)
from .metrics import (
    CosineDistance, FusedHistogramDistance, HistogramIntersectionDistance,
    SumSquaredDistance, WeightedSceneDistance,
)
from .pipeline import RetrievalPipeline


@dataclass(frozen=True)
class Program:
    """
    Attributes:
        name: Program (and console command) name.
        description: One-line summary for --help.
        build: Factory (feature, workers) -> RetrievalPipeline, where
               feature is the loaded feature source or None.
        feature_source: None, "csv" or "onnx".
        corpus_from_source: Rank the entries of the feature source rather
                            than a directory of images.
        default_bottom: Default bottom-K listing size.
    """

    name: str
    description: str
    build: Callable[..., RetrievalPipeline]
    feature_source: Optional[str] = None
    corpus_from_source: bool = False
    default_bottom: int = 0

    def load_feature_source(self, path: str):
        """Load the program's feature source from path."""
        if self.feature_source == "csv":
            return CsvEmbeddingSource.from_csv(path)
        if self.feature_source == "onnx":
            return OnnxEmbedder(path)
        return None


def _baseline(feature=None, workers=None):
    return RetrievalPipeline(CenterPatchExtractor(config.PATCH_SIZE),
                             SumSquaredDistance(), workers)


def _histogram(feature=None, workers=None):
    return RetrievalPipeline(ChromaticityHistogramExtractor(config.CHROMA_BINS),
                             HistogramIntersectionDistance(), workers)


def _multi_histogram(feature=None, workers=None):
    return RetrievalPipeline(SplitRegionHistogramExtractor(config.RGB_BINS),
                             FusedHistogramDistance(), workers)


def _texture_color(feature=None, workers=None):
    return RetrievalPipeline(
        TextureColorExtractor(config.RGB_BINS, config.TEXTURE_BINS),
        FusedHistogramDistance(), workers,
    )


def _deep_embedding(feature, workers=None):
    return RetrievalPipeline(EmbeddingExtractor(feature), CosineDistance(),
                             workers)


def _live_dnn(feature, workers=None):
    return RetrievalPipeline(LiveEmbeddingExtractor(feature), CosineDistance(),
                             workers)


def _warm_scene(feature, workers=None):
    return RetrievalPipeline(WarmSceneExtractor(feature),
                             WeightedSceneDistance(), workers)


PROGRAMS: Dict[str, Program] = {
    p.name: p for p in (
        Program("baseline", "Match the 7x7 center patch by sum of squared "
                "differences", _baseline),
        Program("histogram", "Match rg chromaticity histograms by histogram "
                "intersection", _histogram),
        Program("multi-histogram", "Match top and bottom half RGB histograms",
                _multi_histogram),
        Program("texture-color", "Match whole-image color and gradient "
                "texture histograms", _texture_color),
        Program("deep-embedding", "Match precomputed deep embeddings by "
                "cosine distance", _deep_embedding,
                feature_source="csv", corpus_from_source=True),
        Program("live-dnn", "Match embeddings computed with an ONNX network",
                _live_dnn, feature_source="onnx"),
        Program("warm-scene", "Match warm scenes such as sunsets",
                _warm_scene, feature_source="csv", default_bottom=5),
    )
}


def get_program(name: str) -> Program:
    """
    Look up a program by name.

    Raises:
        ValueError: If name is not a known program.
    """
    try:
        return PROGRAMS[name]
    except KeyError:
        raise ValueError(
            f"Unknown program '{name}', expected one of {sorted(PROGRAMS)}"
        ) from None
