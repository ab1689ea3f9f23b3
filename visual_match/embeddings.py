"""
Embedding sources for deep-feature matching.

Two ways to get a deep embedding for an image:
    CsvEmbeddingSource  precomputed vectors keyed by image file name
    OnnxEmbedder        on-the-fly forward pass through an ONNX network
                        loaded with cv2.dnn

Lookups use the exact identifier; a miss raises LookupMiss instead of
falling back to a zero vector, which would silently skew cosine
distances for that image.
"""

import csv
import logging
import threading
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

import cv2
import numpy as np

from . import config
from .descriptors import as_flat_vector
from .errors import FeatureSourceError, LookupMiss, ModelLoadError

logger = logging.getLogger(__name__)


class EmbeddingSource(Protocol):
    """Read-only mapping from image identifier to embedding vector."""

    def lookup(self, identifier: str) -> np.ndarray:
        """Return the embedding for identifier or raise LookupMiss."""
        ...

    def items(self) -> Iterator[Tuple[str, np.ndarray]]:
        """Iterate (identifier, embedding) pairs in source order."""
        ...

    def __contains__(self, identifier: str) -> bool:
        ...

    def __len__(self) -> int:
        ...


class CsvEmbeddingSource:
    """
    Embeddings held in memory, usually read from a CSV file.

    Each CSV row is ``identifier, v1, v2, ..., vn``. Insertion order is
    kept so enumeration (and therefore ranking tie-breaks) follows the
    file order.
    """

    def __init__(self, embeddings: Dict[str, np.ndarray] = None):
        self._embeddings: Dict[str, np.ndarray] = {}
        for identifier, vector in (embeddings or {}).items():
            self._embeddings[identifier] = as_flat_vector(vector)

    @classmethod
    def from_csv(cls, path) -> "CsvEmbeddingSource":
        """
        Load embeddings from a CSV file.

        A first row whose values are not numeric is treated as a header.
        Blank rows are ignored. Duplicate identifiers keep the first row.

        Raises:
            FileNotFoundError: If the file does not exist.
            FeatureSourceError: If a data row is malformed.
        """
        source = cls()
        dimensions = set()

        with open(path, "r", encoding="utf-8", newline="") as f:
            reader = csv.reader(f)
            for line_number, row in enumerate(reader, start=1):
                row = [cell.strip() for cell in row]
                if not row or not any(row):
                    continue

                identifier, values = row[0], row[1:]
                # Trailing commas are tolerated, gaps are not
                while values and values[-1] == "":
                    values.pop()
                if "" in values:
                    raise FeatureSourceError(
                        f"{path}:{line_number}: empty embedding value "
                        f"for '{identifier}'"
                    )
                try:
                    vector = [float(v) for v in values]
                except ValueError:
                    if line_number == 1:
                        logger.debug(f"Skipping CSV header in {path}")
                        continue
                    raise FeatureSourceError(
                        f"{path}:{line_number}: non-numeric embedding value "
                        f"for '{identifier}'"
                    )

                if not identifier or not vector:
                    raise FeatureSourceError(
                        f"{path}:{line_number}: row needs an identifier and "
                        f"at least one value"
                    )
                if identifier in source:
                    logger.warning(
                        f"Duplicate embedding for {identifier} at line "
                        f"{line_number}, keeping the first"
                    )
                    continue

                source._embeddings[identifier] = as_flat_vector(vector)
                dimensions.add(len(vector))

        if len(dimensions) > 1:
            logger.warning(
                f"Embeddings in {path} have mixed dimensions {sorted(dimensions)}"
            )
        logger.info(f"Loaded {len(source)} embeddings from {path}")
        return source

    def lookup(self, identifier: str) -> np.ndarray:
        try:
            return self._embeddings[identifier]
        except KeyError:
            raise LookupMiss(identifier) from None

    def items(self) -> Iterator[Tuple[str, np.ndarray]]:
        return iter(self._embeddings.items())

    def identifiers(self) -> List[str]:
        return list(self._embeddings)

    @property
    def dimensions(self) -> Optional[int]:
        """Embedding width, or None for an empty source."""
        for vector in self._embeddings.values():
            return int(vector.shape[0])
        return None

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._embeddings

    def __len__(self) -> int:
        return len(self._embeddings)


def write_embeddings_csv(path,
                         rows: Iterable[Tuple[str, np.ndarray]],
                         header: bool = True) -> int:
    """
    Write (identifier, vector) rows in the format CsvEmbeddingSource reads.

    Returns:
        Number of rows written.
    """
    written = 0
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        for identifier, vector in rows:
            vector = np.asarray(vector, dtype=np.float32).ravel()
            if header and written == 0:
                writer.writerow(
                    ["filename"] + [f"f{i}" for i in range(vector.shape[0])]
                )
            writer.writerow([identifier] + [repr(float(v)) for v in vector])
            written += 1
    logger.info(f"Wrote {written} embeddings to {path}")
    return written


class OnnxEmbedder:
    """
    Compute embeddings with an ONNX network through cv2.dnn.

    Defaults match a ResNet18 ImageNet export: 224x224 input, per-channel
    mean subtraction and the flatten layer as the embedding output.
    Calls are safe from several threads; forward passes are serialized.
    """

    def __init__(self,
                 model_path: str,
                 layer: Optional[str] = None,
                 input_size: int = None,
                 scale: float = None,
                 mean: Tuple[float, float, float] = None):
        """
        Load the network.

        Args:
            model_path: Path to an .onnx model.
            layer: Output layer name (default DNN_OUTPUT_LAYER). An empty
                   string uses the network's final output.
            input_size: Square input side in pixels.
            scale: Multiplier applied after mean subtraction.
            mean: Per-channel mean in R, G, B order.

        Raises:
            ModelLoadError: If the model cannot be read.
        """
        self.model_path = str(model_path)
        self.layer = config.DNN_OUTPUT_LAYER if layer is None else layer
        self.input_size = input_size or config.DNN_INPUT_SIZE
        self.scale = config.DNN_SCALE if scale is None else scale
        self.mean = config.DNN_MEAN if mean is None else mean

        try:
            self.net = cv2.dnn.readNet(self.model_path)
        except cv2.error as e:
            raise ModelLoadError(f"Could not load network {self.model_path}: {e}")
        if self.net.empty():
            raise ModelLoadError(f"Network {self.model_path} is empty")
        # A Net holds its input between setInput and forward
        self._lock = threading.Lock()

        logger.info(
            f"Loaded network {self.model_path} "
            f"({len(self.net.getLayerNames())} layers)"
        )

    def __call__(self, image_np: np.ndarray) -> np.ndarray:
        """Forward an RGB uint8 image and return its flattened embedding."""
        # Images are already RGB, so no channel swap
        blob = cv2.dnn.blobFromImage(
            image_np,
            scalefactor=self.scale,
            size=(self.input_size, self.input_size),
            mean=self.mean,
            swapRB=False,
            crop=False,
            ddepth=cv2.CV_32F,
        )
        with self._lock:
            self.net.setInput(blob)
            output = self.net.forward(self.layer) if self.layer else self.net.forward()
            return as_flat_vector(np.asarray(output).ravel())
