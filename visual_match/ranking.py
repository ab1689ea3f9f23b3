"""
Corpus ranking by distance to a query descriptor.

Distances are computed for every corpus entry, optionally across worker
threads, then the results are stable-sorted ascending so ties keep the
corpus enumeration order. Entries the metric cannot compare with the
query are reported as skipped rather than given an extreme distance.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

from . import config
from .descriptors import Descriptor
from .errors import ShapeMismatch

logger = logging.getLogger(__name__)


class CorpusEntry(NamedTuple):
    identifier: str
    descriptor: Descriptor


class RankedResult(NamedTuple):
    identifier: str
    distance: float


class SkippedEntry(NamedTuple):
    identifier: str
    reason: str


@dataclass
class Ranking:
    """
    Outcome of ranking a corpus against one query.

    Attributes:
        results: Every ranked entry, ascending by distance.
        skipped: Entries left out, with the reason.
        k: Number of entries in each of top and bottom.
        query: Query descriptor, when the caller kept it.
        descriptors: Corpus descriptors by identifier, when kept.
    """

    results: List[RankedResult] = field(default_factory=list)
    skipped: List[SkippedEntry] = field(default_factory=list)
    k: int = 0
    query: Optional[Descriptor] = None
    descriptors: Dict[str, Descriptor] = field(default_factory=dict)

    @property
    def top(self) -> List[RankedResult]:
        """The k nearest entries, nearest first."""
        if self.k <= 0:
            return []
        return self.results[:self.k]

    @property
    def bottom(self) -> List[RankedResult]:
        """The k farthest entries, still in ascending order."""
        if self.k <= 0:
            return []
        return self.results[-self.k:]

    def identifiers(self) -> List[str]:
        return [r.identifier for r in self.top]

    def __len__(self):
        return len(self.results)


def partition(items: Sequence, parts: int) -> List[Sequence]:
    """Split items into at most parts contiguous slices of near-equal size."""
    parts = max(1, min(parts, len(items)))
    size, extra = divmod(len(items), parts)
    slices = []
    start = 0
    for i in range(parts):
        end = start + size + (1 if i < extra else 0)
        slices.append(items[start:end])
        start = end
    return slices


def _score_slice(query: Descriptor,
                 entries: Sequence[CorpusEntry],
                 metric: Callable) -> Tuple[List[RankedResult], List[SkippedEntry]]:
    results = []
    skipped = []
    for entry in entries:
        try:
            distance = float(metric(query, entry.descriptor))
        except ShapeMismatch as e:
            skipped.append(SkippedEntry(entry.identifier, f"shape mismatch: {e}"))
            continue

        if not math.isfinite(distance):
            skipped.append(SkippedEntry(entry.identifier,
                                        f"non-finite distance {distance}"))
            continue
        results.append(RankedResult(entry.identifier, distance))
    return results, skipped


def score_corpus(query: Descriptor,
                 corpus: Sequence[CorpusEntry],
                 metric: Callable,
                 workers: int = None
                 ) -> Tuple[List[RankedResult], List[SkippedEntry]]:
    """
    Compute the distance from query to every corpus entry.

    With workers > 1 the corpus is split into contiguous slices, one per
    thread; slice results are concatenated in order, so the output keeps
    corpus enumeration order either way.

    Returns:
        Tuple of (results, skipped), both in corpus order.
    """
    workers = config.RANK_WORKERS if workers is None else workers
    corpus = list(corpus)

    if workers <= 1 or len(corpus) < 2:
        return _score_slice(query, corpus, metric)

    slices = partition(corpus, workers)
    results: List[RankedResult] = []
    skipped: List[SkippedEntry] = []
    with ThreadPoolExecutor(max_workers=len(slices)) as executor:
        for part_results, part_skipped in executor.map(
                lambda part: _score_slice(query, part, metric), slices):
            results.extend(part_results)
            skipped.extend(part_skipped)
    return results, skipped


def sort_results(results: List[RankedResult]) -> List[RankedResult]:
    """
    Sort results ascending by distance.

    The sort is stable: equal distances keep their input order.
    """
    return sorted(results, key=lambda r: r.distance)


def rank(query: Descriptor,
         corpus: Sequence[CorpusEntry],
         metric: Callable,
         k: int,
         workers: int = None) -> Ranking:
    """
    Rank a corpus by distance to a query descriptor.

    Args:
        query: Query descriptor.
        corpus: (identifier, descriptor) entries with unique identifiers.
        metric: Callable (a, b) -> distance.
        k: Size of the top and bottom selections.
        workers: Threads used to compute distances.

    Returns:
        Ranking with all results sorted ascending and the skipped entries.

    Raises:
        ValueError: If two corpus entries share an identifier.
    """
    corpus = [CorpusEntry(*entry) for entry in corpus]

    seen = set()
    for entry in corpus:
        if entry.identifier in seen:
            raise ValueError(f"Duplicate corpus identifier: {entry.identifier}")
        seen.add(entry.identifier)

    results, skipped = score_corpus(query, corpus, metric, workers)
    for entry in skipped:
        logger.warning(f"Skipping {entry.identifier}: {entry.reason}")

    ranking = Ranking(results=sort_results(results), skipped=skipped, k=k)
    logger.debug(
        f"Ranked {len(ranking.results)} entries, skipped {len(skipped)}"
    )
    return ranking
