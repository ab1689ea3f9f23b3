"""Shared test fixtures for visual match tests."""

import os
import time

import numpy as np
import cv2
import pytest

from visual_match.embeddings import write_embeddings_csv


def save_rgb(path, image):
    """Write an RGB image to disk (cv2 expects BGR)."""
    cv2.imwrite(str(path), cv2.cvtColor(image, cv2.COLOR_RGB2BGR))
    return str(path)


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [200, 30, 30]  # Red square
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (30, 30, 200), -1)
    return img


@pytest.fixture
def green_rectangle_image():
    """Generate a 200x200 green rectangle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[30:170, 60:140] = [30, 180, 30]  # Tall green rectangle
    return img


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)


@pytest.fixture
def gray_image():
    """10x10 uniform gray image."""
    return np.full((10, 10, 3), 128, dtype=np.uint8)


@pytest.fixture
def black_image():
    return np.zeros((50, 50, 3), dtype=np.uint8)


@pytest.fixture
def sunset_image():
    """30x40 image: warm orange sky over a blue lower third."""
    img = np.zeros((30, 40, 3), dtype=np.uint8)
    img[:20] = [220, 120, 40]
    img[20:] = [30, 60, 200]
    return img


@pytest.fixture
def image_dir(tmp_path, red_square_image, blue_circle_image,
              green_rectangle_image, noise_image):
    """Directory with four synthetic PNG images."""
    directory = tmp_path / "images"
    directory.mkdir()
    save_rgb(directory / "red.png", red_square_image)
    save_rgb(directory / "blue.png", blue_circle_image)
    save_rgb(directory / "green.png", green_rectangle_image)
    save_rgb(directory / "noise.png", noise_image)
    return str(directory)


@pytest.fixture
def embeddings():
    """Small embedding table keyed by the image_dir file names."""
    return {
        "red.png":   np.array([1.0, 0.0, 0.0, 0.2], dtype=np.float32),
        "blue.png":  np.array([0.0, 0.0, 1.0, 0.2], dtype=np.float32),
        "green.png": np.array([0.0, 1.0, 0.0, 0.2], dtype=np.float32),
        "noise.png": np.array([0.5, 0.5, 0.5, 0.5], dtype=np.float32),
    }


@pytest.fixture
def embedding_csv(tmp_path, embeddings):
    path = os.path.join(str(tmp_path), "embeddings.csv")
    write_embeddings_csv(path, embeddings.items())
    return path


class FakeNet:
    """Stand-in for cv2.dnn.Net: the embedding is the per-channel blob mean.

    forward() sleeps before reading the stored input, so unsynchronized
    callers see each other's inputs.
    """

    def __init__(self):
        self._blob = None

    def empty(self):
        return False

    def getLayerNames(self):
        return ["data", "mean"]

    def setInput(self, blob):
        self._blob = blob

    def forward(self, layer=None):
        time.sleep(0.001)
        return self._blob.mean(axis=(2, 3))


@pytest.fixture
def fake_dnn(monkeypatch):
    """Make cv2.dnn.readNet return a FakeNet for any path."""
    monkeypatch.setattr(cv2.dnn, "readNet", lambda path: FakeNet())
