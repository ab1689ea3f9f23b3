"""Tests for the on-disk descriptor index."""

import json
import os

import numpy as np
import pytest

from visual_match.corpus import load_image
from visual_match.errors import FeatureSourceError, ShapeMismatch
from visual_match.extractors import (
    CenterPatchExtractor, ChromaticityHistogramExtractor,
    SplitRegionHistogramExtractor,
)
from visual_match.index import (
    DESCRIPTORS_FILE, FAISS_FILE, FILENAMES_FILE, META_FILE, DescriptorIndex,
    build_index,
)
from visual_match.metrics import (
    CosineDistance, HistogramIntersectionDistance, SumSquaredDistance,
)
from visual_match.ranking import rank


@pytest.fixture
def patch_index(image_dir, tmp_path):
    output_dir = str(tmp_path / "index")
    stats = build_index(image_dir, output_dir, CenterPatchExtractor())
    assert stats["success"]
    return output_dir


class TestBuildIndex:
    """Tests for build_index()."""

    def test_writes_files(self, patch_index):
        for name in (DESCRIPTORS_FILE, FILENAMES_FILE, FAISS_FILE, META_FILE):
            assert os.path.isfile(os.path.join(patch_index, name))

    def test_stats(self, image_dir, tmp_path):
        stats = build_index(image_dir, str(tmp_path / "out"),
                            CenterPatchExtractor())
        assert stats["processed"] == 4
        assert stats["vectors"] == 4
        assert stats["dimensions"] == 147
        assert stats["errors"] == 0

    def test_bad_files_counted(self, image_dir, tmp_path):
        with open(os.path.join(image_dir, "broken.jpg"), "wb") as f:
            f.write(b"garbage")
        stats = build_index(image_dir, str(tmp_path / "out"),
                            CenterPatchExtractor())
        assert stats["processed"] == 4
        assert stats["errors"] == 1

    def test_records_extractor(self, patch_index):
        with open(os.path.join(patch_index, META_FILE)) as f:
            meta = json.load(f)
        assert meta["extractor"] == "center_patch"
        assert meta["params"] == {"size": 7}
        assert meta["count"] == 4

    def test_empty_directory(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        stats = build_index(str(empty), str(tmp_path / "out"),
                            CenterPatchExtractor())
        assert stats["success"] is False

    def test_composite_descriptors_rejected(self, image_dir, tmp_path):
        with pytest.raises(ValueError, match="flat vectors"):
            build_index(image_dir, str(tmp_path / "out"),
                        SplitRegionHistogramExtractor())


class TestDescriptorIndex:
    """Tests for loading and searching an index."""

    def test_load(self, patch_index):
        index = DescriptorIndex.load(patch_index)
        assert len(index) == 4
        assert index.dimensions == 147
        assert index.filenames == ["blue.png", "green.png", "noise.png", "red.png"]

    def test_load_missing_files(self, tmp_path):
        with pytest.raises(FeatureSourceError):
            DescriptorIndex.load(str(tmp_path))

    def test_ssd_search_matches_ranker(self, patch_index, image_dir):
        index = DescriptorIndex.load(patch_index)
        query = CenterPatchExtractor().extract(
            load_image(os.path.join(image_dir, "red.png")))

        faiss_ranking = index.search(query, 2, SumSquaredDistance())
        exact = rank(query, index.corpus(), SumSquaredDistance(), 2)

        assert faiss_ranking.top[0].identifier == "red.png"
        assert faiss_ranking.top[0].distance == pytest.approx(0.0, abs=1e-3)
        assert ([r.identifier for r in faiss_ranking.results]
                == [r.identifier for r in exact.results])
        for a, b in zip(faiss_ranking.results, exact.results):
            assert a.distance == pytest.approx(b.distance, rel=1e-4)

    def test_cosine_search_matches_ranker(self, image_dir, tmp_path):
        output_dir = str(tmp_path / "chroma")
        extractor = ChromaticityHistogramExtractor()
        build_index(image_dir, output_dir, extractor)
        index = DescriptorIndex.load(output_dir)
        query = extractor.extract(load_image(os.path.join(image_dir, "blue.png")))

        faiss_ranking = index.search(query, 4, CosineDistance())
        exact = rank(query, index.corpus(), CosineDistance(), 4)

        assert faiss_ranking.top[0].identifier == "blue.png"
        for a, b in zip(faiss_ranking.results, exact.results):
            assert a.distance == pytest.approx(b.distance, abs=1e-5)

    def test_other_metrics_fall_back_to_ranker(self, image_dir, tmp_path):
        output_dir = str(tmp_path / "chroma")
        extractor = ChromaticityHistogramExtractor()
        build_index(image_dir, output_dir, extractor)
        index = DescriptorIndex.load(output_dir)
        query = extractor.extract(load_image(os.path.join(image_dir, "green.png")))

        ranking = index.search(query, 1, HistogramIntersectionDistance())
        assert ranking.identifiers() == ["green.png"]

    def test_query_dimension_mismatch(self, patch_index):
        index = DescriptorIndex.load(patch_index)
        with pytest.raises(ShapeMismatch):
            index.search(np.zeros(10, dtype=np.float32), 3, SumSquaredDistance())

    def test_inconsistent_arrays(self):
        with pytest.raises(FeatureSourceError):
            DescriptorIndex(np.zeros((3, 4), dtype=np.float32), ["a", "b"])

    def test_corpus_entries_read_only(self, patch_index):
        entry = DescriptorIndex.load(patch_index).corpus()[0]
        assert not entry.descriptor.flags.writeable

    def test_matching_extractor_accepted(self, patch_index):
        index = DescriptorIndex.load(patch_index)
        assert index.extractor == "center_patch"
        index.check_extractor(CenterPatchExtractor(size=7))

    def test_other_extractor_rejected(self, patch_index):
        index = DescriptorIndex.load(patch_index)
        with pytest.raises(FeatureSourceError, match="center_patch"):
            index.check_extractor(SplitRegionHistogramExtractor())

    def test_other_parameters_rejected(self, patch_index):
        index = DescriptorIndex.load(patch_index)
        with pytest.raises(FeatureSourceError):
            index.check_extractor(CenterPatchExtractor(size=5))

    def test_missing_metadata(self, patch_index):
        os.remove(os.path.join(patch_index, META_FILE))
        with pytest.raises(FeatureSourceError):
            DescriptorIndex.load(patch_index)
