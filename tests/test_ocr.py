import cv2
import numpy as np
import pytest
import pytesseract

from rifornimenti.errors import InputError, UpstreamError
from rifornimenti.ocr.engine import TesseractRecognizer
from rifornimenti.ocr.postprocess import normalize_ocr_text
from rifornimenti.ocr.preprocess import decode_image, preprocess_for_ocr, sniff_mime_type


def _receipt_png() -> bytes:
    img = np.full((300, 200, 3), 255, dtype=np.uint8)
    cv2.putText(img, "TOTALE 81,40", (10, 150), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 2)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


def test_normalize_ocr_text():
    raw = "  ENI  STATION  \r\n\n\n\nTOTALE   81,40\f"
    assert normalize_ocr_text(raw) == "ENI STATION\n\nTOTALE 81,40"


def test_sniff_mime_type():
    assert sniff_mime_type(b"\xff\xd8\xff\xe0...") == "image/jpeg"
    assert sniff_mime_type(b"\x89PNG\r\n\x1a\n...") == "image/png"
    assert sniff_mime_type(b"RIFF\x00\x00\x00\x00WEBPVP8") == "image/webp"
    assert sniff_mime_type(b"???") == "image/jpeg"


def test_decode_image_rejects_garbage():
    with pytest.raises(ValueError):
        decode_image(b"non un'immagine")
    with pytest.raises(ValueError):
        decode_image(b"")


def test_preprocess_rotates_landscape_and_binarizes():
    img = np.full((100, 300, 3), 255, dtype=np.uint8)
    th, steps = preprocess_for_ocr(img, enable_crop=False)
    assert steps[0] == "to_gray"
    assert "rotate_landscape_to_portrait" in steps
    assert th.shape[0] > th.shape[1]
    assert set(np.unique(th)) <= {0, 255}


def test_tesseract_recognizer_normalizes_output(monkeypatch):
    seen = {}

    def fake_image_to_string(image, lang=None, config=None):
        seen["lang"] = lang
        seen["config"] = config
        return "TOTALE   81,40\n\n\n\nKM 1000\f"

    monkeypatch.setattr("rifornimenti.ocr.engine.pytesseract.image_to_string", fake_image_to_string)
    result = TesseractRecognizer(lang="ita", psm=4).recognize(_receipt_png(), "image/png")

    assert result.text == "TOTALE 81,40\n\nKM 1000"
    assert result.steps and result.steps[-1] == "morph_close_2x2"
    assert seen["lang"] == "ita"
    assert "--psm 4" in seen["config"]


def test_tesseract_missing_is_upstream_error(monkeypatch):
    def fake_image_to_string(image, lang=None, config=None):
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr("rifornimenti.ocr.engine.pytesseract.image_to_string", fake_image_to_string)
    with pytest.raises(UpstreamError):
        TesseractRecognizer().recognize(_receipt_png(), "image/png")


def test_unreadable_image_is_input_error():
    with pytest.raises(InputError, match="Immagine non leggibile"):
        TesseractRecognizer().recognize(b"\xff\xd8\xffrotto", "image/jpeg")
