"""
Content-based retrieval pipeline.

Composes one feature extractor, one distance metric and the ranker into
an end-to-end "rank a corpus against a target" operation:
    1. Describe the target (failures here are fatal)
    2. Describe every corpus entry (failures skip that entry)
    3. Rank the described corpus by distance to the target

A corpus entry that fails to decode, has no embedding, or is too small
for the extractor is logged and skipped; one bad entry never aborts the
run.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from . import config
from .corpus import image_identifier, iter_image_paths, load_image
from .descriptors import Descriptor
from .embeddings import EmbeddingSource
from .errors import DecodeError, InsufficientImageSize, LookupMiss
from .extractors import FeatureExtractor
from .metrics import DistanceMetric
from .ranking import CorpusEntry, Ranking, SkippedEntry, partition, rank

logger = logging.getLogger(__name__)

# Errors that exclude a single corpus entry
ENTRY_ERRORS = (DecodeError, LookupMiss, InsufficientImageSize)


class RetrievalPipeline:
    """
    One extractor + one metric + the ranker.

    Each matching program is a RetrievalPipeline with its own extractor
    and metric; see programs.PROGRAMS.
    """

    def __init__(self,
                 extractor: FeatureExtractor,
                 metric: DistanceMetric,
                 workers: int = None):
        """
        Args:
            extractor: Produces descriptors from images or identifiers.
            metric: Compares two descriptors.
            workers: Threads for extraction and distance computation.
        """
        self.extractor = extractor
        self.metric = metric
        self.workers = config.RANK_WORKERS if workers is None else max(1, workers)

    def __repr__(self):
        return (f"RetrievalPipeline(extractor={self.extractor!r}, "
                f"metric={self.metric!r}, workers={self.workers})")

    def describe(self, identifier: str, path: Optional[str] = None,
                 image: Optional[np.ndarray] = None) -> Descriptor:
        """
        Describe one image.

        Pixels are loaded from path only when the extractor needs them
        and no image was passed in.

        Raises:
            DecodeError, LookupMiss, InsufficientImageSize
        """
        if self.extractor.needs_pixels and image is None:
            if path is None:
                raise ValueError(f"No image data or path for {identifier}")
            image = load_image(path)
        return self.extractor.extract(image, identifier)

    def describe_target(self, target: str,
                        image: Optional[np.ndarray] = None) -> Descriptor:
        """
        Describe the target image given its path.

        Extractors that don't read pixels look the target up verbatim,
        so a source keyed by paths can be queried by path.
        """
        if self.extractor.needs_pixels:
            identifier, path = image_identifier(target), target
        else:
            identifier, path = target, None
        descriptor = self.describe(identifier, path, image)
        logger.info(f"Described target {identifier} with {self.extractor!r}")
        return descriptor

    def _describe_slice(self, items: Sequence[Tuple[str, Optional[str]]]
                        ) -> Tuple[List[CorpusEntry], List[SkippedEntry]]:
        entries = []
        skipped = []
        for i, (identifier, path) in enumerate(items):
            if i and i % config.PROGRESS_EVERY == 0:
                logger.info(f"Processed {i}/{len(items)} images")
            try:
                descriptor = self.describe(identifier, path)
            except ENTRY_ERRORS as e:
                logger.warning(f"Skipping {identifier}: {e}")
                skipped.append(SkippedEntry(identifier, str(e)))
                continue
            entries.append(CorpusEntry(identifier, descriptor))
        return entries, skipped

    def describe_corpus(self, items: Iterable[Tuple[str, Optional[str]]]
                        ) -> Tuple[List[CorpusEntry], List[SkippedEntry]]:
        """
        Describe every (identifier, path) item.

        Items are split into contiguous slices, one per worker, and the
        results concatenated in order so enumeration order is preserved.

        Returns:
            Tuple of (entries, skipped) in enumeration order.
        """
        items = list(items)
        logger.info(f"Describing {len(items)} corpus entries")

        entries: List[CorpusEntry] = []
        skipped: List[SkippedEntry] = []
        slices = partition(items, self.workers)

        if len(slices) == 1:
            parts = [self._describe_slice(slices[0])]
        else:
            with ThreadPoolExecutor(max_workers=len(slices)) as executor:
                parts = list(executor.map(self._describe_slice, slices))

        for part_entries, part_skipped in parts:
            entries.extend(part_entries)
            skipped.extend(part_skipped)

        logger.info(
            f"Described {len(entries)} entries, skipped {len(skipped)}"
        )
        return entries, skipped

    def search(self, query: Descriptor, corpus: Sequence[CorpusEntry],
               k: int) -> Ranking:
        """Rank already-described corpus entries against a query."""
        return rank(query, corpus, self.metric, k, workers=self.workers)

    def run(self, target: str, image_dir: str, k: int) -> Ranking:
        """
        Rank the images of a directory against a target image.

        Args:
            target: Path to the target image.
            image_dir: Directory of corpus images.
            k: Size of the top and bottom selections.

        Returns:
            Ranking whose skipped list holds extraction and comparison
            failures.

        Raises:
            DecodeError, LookupMiss, InsufficientImageSize: For the target.
            FileNotFoundError, NotADirectoryError: For the corpus directory.
        """
        query = self.describe_target(target)
        entries, skipped = self.describe_corpus(iter_image_paths(image_dir))
        return self._finish(query, entries, skipped, k)

    def run_source(self, target: str, source: EmbeddingSource,
                   k: int) -> Ranking:
        """
        Rank every entry of an embedding source against a target.

        For extractors that read descriptors straight from the source;
        the target is looked up by identifier.

        Raises:
            LookupMiss: If the target has no embedding.
        """
        query = self.describe_target(target)
        items = [(identifier, None) for identifier, _ in source.items()]
        entries, skipped = self.describe_corpus(items)
        return self._finish(query, entries, skipped, k)

    def _finish(self, query, entries, skipped, k) -> Ranking:
        ranking = self.search(query, entries, k)
        ranking.skipped = skipped + ranking.skipped
        ranking.query = query
        ranking.descriptors = {e.identifier: e.descriptor for e in entries}
        logger.info(
            f"Ranking complete: {len(ranking.results)} ranked, "
            f"{len(ranking.skipped)} skipped"
        )
        return ranking
