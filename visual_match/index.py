"""
On-disk descriptor index with FAISS search.

Precomputes flat descriptors for a directory of images so repeated
queries skip feature extraction:
    - descriptors.npy       float32 matrix, one row per image
    - filenames.npy         identifiers in row order
    - descriptors_l2.index  FAISS IndexFlatL2 over the rows
    - index_meta.json       extractor name and parameters that built it

IndexFlatL2 returns squared L2 distances, which is exactly the sum of
squared differences; cosine distance is served from an inner-product
index built over L2-normalized copies at load time. Other metrics fall
back to the ranker over the cached descriptors.
"""

import os
import json
import logging
from typing import List, Optional

import faiss
import numpy as np

from .corpus import iter_image_paths
from .errors import FeatureSourceError, ShapeMismatch
from .extractors import FeatureExtractor
from .metrics import CosineDistance, SumSquaredDistance
from .pipeline import RetrievalPipeline
from .ranking import CorpusEntry, RankedResult, Ranking, rank

logger = logging.getLogger(__name__)

DESCRIPTORS_FILE = "descriptors.npy"
FILENAMES_FILE = "filenames.npy"
FAISS_FILE = "descriptors_l2.index"
META_FILE = "index_meta.json"


def build_index(image_dir: str,
                output_dir: str,
                extractor: FeatureExtractor,
                workers: int = None) -> dict:
    """
    Describe every image in image_dir and write the index files.

    Only extractors producing flat vectors can be indexed.

    Args:
        image_dir: Directory containing corpus images.
        output_dir: Directory to write index files.
        extractor: Flat-vector feature extractor.
        workers: Threads for extraction.

    Returns:
        Dict with 'success', 'processed', 'errors', 'vectors',
        'dimensions' and 'index_path'.
    """
    os.makedirs(output_dir, exist_ok=True)

    # The metric is unused while describing; any flat metric will do
    pipeline = RetrievalPipeline(extractor, SumSquaredDistance(), workers)
    entries, skipped = pipeline.describe_corpus(iter_image_paths(image_dir))

    if not entries:
        return {"success": False, "error": "No valid images processed",
                "errors": len(skipped)}

    for entry in entries:
        if not isinstance(entry.descriptor, np.ndarray):
            raise ValueError(
                f"{extractor!r} produces {type(entry.descriptor).__name__} "
                f"descriptors; only flat vectors can be indexed"
            )

    dims = {entry.descriptor.shape[0] for entry in entries}
    if len(dims) > 1:
        raise ShapeMismatch(f"Descriptors have mixed dimensions {sorted(dims)}")

    matrix = np.vstack([entry.descriptor for entry in entries]).astype(np.float32)
    dim = matrix.shape[1]

    index = faiss.IndexFlatL2(dim)
    index.add(matrix)

    faiss_path = os.path.join(output_dir, FAISS_FILE)
    faiss.write_index(index, faiss_path)
    np.save(os.path.join(output_dir, DESCRIPTORS_FILE), matrix)
    np.save(os.path.join(output_dir, FILENAMES_FILE),
            np.array([entry.identifier for entry in entries]))
    with open(os.path.join(output_dir, META_FILE), "w", encoding="utf-8") as f:
        json.dump({
            "extractor": extractor.name,
            "params": extractor.params(),
            "dimensions": dim,
            "count": len(entries),
        }, f, indent=2)

    logger.info(
        f"Index built: {len(entries)} images, {dim}d vectors, "
        f"{len(skipped)} errors"
    )

    return {
        "success": True,
        "processed": len(entries),
        "errors": len(skipped),
        "vectors": int(index.ntotal),
        "dimensions": dim,
        "index_path": faiss_path,
    }


class DescriptorIndex:
    """Cached flat descriptors plus FAISS indexes for SSD and cosine search."""

    def __init__(self, descriptors: np.ndarray, filenames: List[str],
                 l2_index: faiss.Index = None,
                 extractor: Optional[str] = None,
                 params: Optional[dict] = None):
        if descriptors.ndim != 2 or descriptors.shape[0] != len(filenames):
            raise FeatureSourceError(
                f"Descriptor matrix {descriptors.shape} doesn't match "
                f"{len(filenames)} filenames"
            )
        self.descriptors = np.ascontiguousarray(descriptors, dtype=np.float32)
        self.filenames = list(filenames)
        self.dimensions = self.descriptors.shape[1]
        self.extractor = extractor
        self.params = params or {}

        if l2_index is None:
            l2_index = faiss.IndexFlatL2(self.dimensions)
            l2_index.add(self.descriptors)
        self.l2_index = l2_index

        normalized = self.descriptors.copy()
        faiss.normalize_L2(normalized)
        self.ip_index = faiss.IndexFlatIP(self.dimensions)
        self.ip_index.add(normalized)

    @classmethod
    def load(cls, index_dir: str) -> "DescriptorIndex":
        """
        Load an index written by build_index().

        Raises:
            FeatureSourceError: If files are missing or inconsistent.
        """
        paths = [os.path.join(index_dir, name)
                 for name in (DESCRIPTORS_FILE, FILENAMES_FILE, FAISS_FILE,
                              META_FILE)]
        missing = [p for p in paths if not os.path.exists(p)]
        if missing:
            raise FeatureSourceError(f"Index files missing: {missing}")

        descriptors = np.load(paths[0])
        filenames = [str(f) for f in np.load(paths[1])]
        l2_index = faiss.read_index(paths[2])
        with open(paths[3], "r", encoding="utf-8") as f:
            meta = json.load(f)
        if l2_index.ntotal != len(filenames):
            raise FeatureSourceError(
                f"FAISS index holds {l2_index.ntotal} vectors for "
                f"{len(filenames)} filenames"
            )

        logger.info(
            f"Loaded descriptor index: {l2_index.ntotal} vectors, "
            f"{l2_index.d}d"
        )
        return cls(descriptors, filenames, l2_index,
                   extractor=meta.get("extractor"), params=meta.get("params"))

    def check_extractor(self, extractor: FeatureExtractor) -> None:
        """
        Verify the index was built by an extractor configured like this one.

        Raises:
            FeatureSourceError: If the recorded extractor or its
                parameters differ.
        """
        if self.extractor is None:
            return
        if (self.extractor != extractor.name
                or self.params != extractor.params()):
            raise FeatureSourceError(
                f"Index was built with {self.extractor} {self.params}, "
                f"not {extractor!r}"
            )

    def __len__(self):
        return len(self.filenames)

    def corpus(self) -> List[CorpusEntry]:
        """Cached descriptors as read-only corpus entries."""
        entries = []
        for filename, row in zip(self.filenames, self.descriptors):
            vector = row.copy()
            vector.setflags(write=False)
            entries.append(CorpusEntry(filename, vector))
        return entries

    def search(self, query: np.ndarray, k: int, metric) -> Ranking:
        """
        Rank every cached descriptor against a query.

        SumSquaredDistance and CosineDistance run through FAISS; the
        full result list is re-sorted by (distance, row) so ties follow
        index order. Other metrics go through the ranker.

        Raises:
            ShapeMismatch: If the query width differs from the index.
        """
        if not isinstance(metric, (SumSquaredDistance, CosineDistance)):
            return rank(query, self.corpus(), metric, k)

        query = np.asarray(query, dtype=np.float32).reshape(1, -1)
        if query.shape[1] != self.dimensions:
            raise ShapeMismatch(
                f"Query dimension {query.shape[1]} doesn't match "
                f"index dimension {self.dimensions}"
            )
        if not self.filenames:
            return Ranking(k=k)

        if isinstance(metric, CosineDistance):
            query = query.copy()
            faiss.normalize_L2(query)
            similarities, indices = self.ip_index.search(query, len(self))
            # Clamp like cosine_distance() does
            distances = 1.0 - np.clip(similarities[0], -1.0, 1.0)
        else:
            distances, indices = self.l2_index.search(query, len(self))
            distances = distances[0]

        rows = sorted(
            (float(d), int(i)) for d, i in zip(distances, indices[0]) if i >= 0
        )
        results = [RankedResult(self.filenames[i], d) for d, i in rows]
        return Ranking(results=results, k=k)
