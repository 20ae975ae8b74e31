"""
test_ocr.py
Line assembly, engine lifecycle and failure handling for extract_text().
EasyOCR itself is replaced by a fake reader.
"""

from conftest import box
from card_image import CardImage
from config import OCR_ALLOWLIST
from ocr import extract_text, group_lines, normalize_language, ocr_engine


def test_group_lines_orders_rows_and_words():
    results = [
        (box(300, 12, 420, 40), "VMAX", 0.9),
        (box(10, 10, 280, 42), "Pikachu", 0.95),
        (box(20, 300, 120, 330), "58/102", 0.8),
        (box(600, 15, 700, 38), "310 HP", 0.7),
    ]
    assert group_lines(results) == ["Pikachu VMAX 310 HP", "58/102"]


def test_group_lines_skips_blank_detections():
    results = [(box(0, 0, 10, 10), "   ", 0.1), (box(0, 50, 40, 60), "Onix", 0.9)]
    assert group_lines(results) == ["Onix"]


def test_extract_text_uses_allowlist_and_releases_engine(reader_factory):
    factory, reader = reader_factory(results=[
        (box(10, 10, 200, 40), "Charizard", 0.9),
        (box(10, 300, 90, 330), "4/102", 0.8),
    ])

    result = extract_text(b"image-bytes", reader_factory=factory)

    assert result.ok
    assert result.text == "Charizard\n4/102"
    assert reader.calls[0]["allowlist"] == OCR_ALLOWLIST
    assert reader.calls[0]["paragraph"] is False
    assert reader.closed == 1
    assert factory.languages == ["en"]


def test_recognition_error_becomes_empty_text(reader_factory):
    factory, reader = reader_factory(error=RuntimeError("CUDA out of memory"))

    result = extract_text(b"image-bytes", reader_factory=factory)

    assert result.text == ""
    assert not result.ok
    assert "CUDA out of memory" in result.error
    assert reader.closed == 1


def test_engine_init_failure_becomes_empty_text():
    def factory(language):
        raise OSError("model download failed")

    result = extract_text(b"image-bytes", reader_factory=factory)
    assert result.text == ""
    assert "model download failed" in result.error


def test_invalid_data_uri_becomes_empty_text(reader_factory):
    factory, reader = reader_factory()
    result = extract_text("not a data uri", reader_factory=factory)
    assert result.text == ""
    assert result.error
    assert reader.calls == []


def test_accepts_card_image_and_data_uri(reader_factory):
    factory, reader = reader_factory(results=[(box(0, 0, 50, 20), "Eevee", 0.9)])
    uri = CardImage(b"abc", "image/png").to_data_uri()

    assert extract_text(uri, reader_factory=factory).text == "Eevee"
    assert extract_text(CardImage(b"abc"), reader_factory=factory).text == "Eevee"
    assert reader.closed == 2


def test_language_hint_normalized(reader_factory):
    factory, reader = reader_factory()
    extract_text(b"x", language="eng", reader_factory=factory)
    assert factory.languages == ["en"]
    assert normalize_language(None) == "en"
    assert normalize_language("JA") == "ja"


def test_engine_released_when_body_raises(reader_factory):
    factory, reader = reader_factory()
    try:
        with ocr_engine("en", reader_factory=factory):
            raise KeyError("boom")
    except KeyError:
        pass
    assert reader.closed == 1
