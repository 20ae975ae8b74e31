"""
conftest.py - Shared fakes for the test suite.

  - FakeReader:   stands in for easyocr.Reader (readtext + close counting)
  - FakeSession:  stands in for requests.Session against pokemontcg.io
  - FakeGenai:    stands in for google.genai.Client (models.generate_content)
"""

from types import SimpleNamespace

import cv2
import numpy as np
import pytest


def box(x0, y0, x1, y1):
    """EasyOCR-style 4-point bbox."""
    return [[x0, y0], [x1, y0], [x1, y1], [x0, y1]]


class FakeReader:
    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.calls = []
        self.closed = 0

    def readtext(self, image, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.results

    def close(self):
        self.closed += 1


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload


class FakeSession:
    """Returns queued responses in order and records every request."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.requests = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.requests.append({"url": url, "params": params, "headers": headers})
        if self.error:
            raise self.error
        return self.responses.pop(0)


class FakeModels:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


class FakeGenai:
    def __init__(self, text=None, error=None):
        self.models = FakeModels(text=text, error=error)


def api_card(card_id, name, set_name, number, set_id="base1"):
    """One card object in pokemontcg.io response shape."""
    return {
        "id": card_id,
        "name": name,
        "number": number,
        "rarity": "Common",
        "set": {"id": set_id, "name": set_name},
        "images": {"small": f"https://images.pokemontcg.io/{set_id}/{number}.png",
                   "large": f"https://images.pokemontcg.io/{set_id}/{number}_hires.png"},
    }


@pytest.fixture
def png_bytes():
    """Build a PNG of the given size (width, height)."""
    def _make(width=1000, height=1400):
        img = np.full((height, width, 3), 255, dtype=np.uint8)
        img[: height // 10, :, :] = 0
        ok, buf = cv2.imencode(".png", img)
        assert ok
        return buf.tobytes()
    return _make


@pytest.fixture
def reader_factory():
    """Returns (factory, reader): factory(language) hands out the reader."""
    def _make(results=None, error=None):
        reader = FakeReader(results=results, error=error)
        languages = []

        def factory(language):
            languages.append(language)
            return reader

        factory.languages = languages
        return factory, reader
    return _make
