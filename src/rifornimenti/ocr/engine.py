"""
@file engine.py
@brief Servizio di riconoscimento testo (OCR) sugli scontrini.
@ingroup ocr_module

@details
Il contratto verso la pipeline è TextRecognizer: byte immagine + tipo MIME in
ingresso, testo semplice in uscita. L'implementazione di default usa
Tesseract tramite pytesseract e separa:
- decodifica e pre-processing immagine
- esecuzione OCR
- standardizzazione output (testo normalizzato + confidenza)
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Protocol

import pytesseract

from rifornimenti.errors import InputError, UpstreamError
from .postprocess import normalize_ocr_text
from .preprocess import decode_image, preprocess_for_ocr

logger = logging.getLogger(__name__)


@dataclass
class OcrResult:
    """
    @brief Risultato standardizzato del processo OCR.
    @details
    - text: testo estratto e normalizzato (può essere vuoto)
    - confidence: confidenza (se disponibile), altrimenti None
    - steps: step di pre-processing applicati
    """
    text: str
    confidence: float | None = None
    steps: list[str] | None = None


class TextRecognizer(Protocol):
    def recognize(self, content: bytes, mime_type: str) -> OcrResult: ...


class TesseractRecognizer:
    """
    @brief Riconoscimento testo locale con Tesseract.
    @param lang Codice lingua Tesseract (es. "ita", "eng").
    @param psm Page Segmentation Mode (default 6, singola colonna).
    @param extra_config Configurazione aggiuntiva Tesseract (opzionale).
    """

    def __init__(self, lang: str = "ita", psm: int = 6, extra_config: str | None = None) -> None:
        self.lang = lang
        self.psm = psm
        self.extra_config = extra_config

    def _config(self) -> str:
        base_config = (
            f"--oem 1 --psm {self.psm} "
            "-c textord_heavy_nr=1 "
            "-c preserve_interword_spaces=0"
        )
        return f"{base_config} {self.extra_config}" if self.extra_config else base_config

    def recognize(self, content: bytes, mime_type: str) -> OcrResult:
        """
        @brief Esegue OCR su un'immagine grezza.
        @param content Byte dell'immagine.
        @param mime_type Tipo MIME dichiarato (usato solo nei log: OpenCV riconosce il formato).
        @return OcrResult con testo normalizzato.

        @throws InputError Se l'immagine non è decodificabile.
        @throws UpstreamError Se Tesseract manca o fallisce.
        """
        try:
            img = decode_image(content)
        except ValueError as e:
            raise InputError(str(e)) from e

        pre, steps = preprocess_for_ocr(img)
        logger.debug("OCR %s: pre-processing %s", mime_type, ", ".join(steps))

        try:
            text = pytesseract.image_to_string(pre, lang=self.lang, config=self._config())
        except pytesseract.TesseractNotFoundError as e:
            raise UpstreamError("Motore OCR non disponibile (tesseract non installato)") from e
        except pytesseract.TesseractError as e:
            raise UpstreamError(f"Errore OCR: {e}") from e

        text = normalize_ocr_text(text)
        logger.info("OCR completato: %d caratteri estratti", len(text))
        return OcrResult(text=text, confidence=None, steps=steps)
