from __future__ import annotations

import base64
from datetime import date

import pytest

from rifornimenti.domain.models import FuelTypeEntry
from rifornimenti.ocr.engine import OcrResult
from rifornimenti.pipeline import ExtractionOrchestrator
from rifornimenti.services.auth import StaticTokenVerifier
from rifornimenti.llm.structured import StructuredFieldExtractor

SAMPLE_RECEIPT = """ENI STATION VIA ROMA 12
Milano
12/01/2025 10:32
TARGA AB 123 CD
GASOLIO
LITRI 45,50
P.U. 1,789 €/L
TOTALE EURO 81,40
KM 125.000
"""

AUTH = "Bearer tok-123"
IMAGE_B64 = base64.b64encode(b"\xff\xd8\xff\xe0fake-jpeg").decode("ascii")
TODAY = date(2025, 1, 20)


class FakeCatalog:
    def __init__(self, names=("Diesel", "Benzina", "GPL")):
        self.entries = [FuelTypeEntry(id=i, nome=n) for i, n in enumerate(names, start=1)]
        self.calls = 0

    def list_active_fuel_types(self):
        self.calls += 1
        return list(self.entries)


class FakeRecognizer:
    def __init__(self, text="", exc=None):
        self.text = text
        self.exc = exc
        self.calls = []

    def recognize(self, content, mime_type):
        self.calls.append((content, mime_type))
        if self.exc is not None:
            raise self.exc
        return OcrResult(text=self.text)


class FakeCompletionClient:
    def __init__(self, reply="{}", exc=None):
        self.reply = reply
        self.exc = exc
        self.prompts = []
        self.images = []

    def complete(self, prompt, image=None):
        self.prompts.append(prompt)
        self.images.append(image)
        if self.exc is not None:
            raise self.exc
        return self.reply


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def make_orchestrator(catalog):
    def _make(text=SAMPLE_RECEIPT, reply=None, client=None, recognizer=None, **kwargs):
        if client is None and reply is not None:
            client = FakeCompletionClient(reply)
        structured = StructuredFieldExtractor(client) if client is not None else None
        return ExtractionOrchestrator(
            auth=StaticTokenVerifier({"tok-123": "user-1"}),
            catalog=kwargs.pop("catalog", catalog),
            recognizer=recognizer or FakeRecognizer(text),
            structured=structured,
            today=lambda: TODAY,
            **kwargs,
        )

    return _make
