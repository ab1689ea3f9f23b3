"""
Image corpus enumeration and decoding.

Corpus identifiers are image file names, so they line up with the
identifiers used in embedding CSV files. Directory listings are sorted
to keep enumeration order (and ranking tie-breaks) reproducible.
"""

import os
import logging
from typing import Iterator, List, Tuple

import cv2
import numpy as np

from .errors import DecodeError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".ppm", ".tif", ".tiff", ".bmp"}


def is_image_file(filename: str) -> bool:
    return os.path.splitext(filename)[1].lower() in IMAGE_EXTENSIONS


def list_images(image_dir: str) -> List[str]:
    """
    List image file names in a directory, sorted.

    Raises:
        FileNotFoundError: If the directory does not exist.
        NotADirectoryError: If the path is not a directory.
    """
    if not os.path.exists(image_dir):
        raise FileNotFoundError(f"Image directory not found: {image_dir}")
    if not os.path.isdir(image_dir):
        raise NotADirectoryError(f"Not a directory: {image_dir}")

    return sorted(
        f for f in os.listdir(image_dir)
        if is_image_file(f) and os.path.isfile(os.path.join(image_dir, f))
    )


def iter_image_paths(image_dir: str) -> Iterator[Tuple[str, str]]:
    """Yield (identifier, path) for every image in a directory."""
    for filename in list_images(image_dir):
        yield filename, os.path.join(image_dir, filename)


def image_identifier(path: str) -> str:
    """Identifier of an image path: its file name."""
    return os.path.basename(os.path.normpath(str(path)))


def load_image(path: str) -> np.ndarray:
    """
    Load an image as RGB uint8.

    Raises:
        DecodeError: If the file is missing or cannot be decoded.
    """
    path = str(path)
    if not os.path.isfile(path):
        raise DecodeError(path, "file not found")

    image = cv2.imread(path, cv2.IMREAD_COLOR)
    if image is None:
        raise DecodeError(path)
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
