"""
@file postprocess.py
@brief Pulizia del testo OCR prima dell'estrazione dei campi.
@ingroup ocr_module

@details
Tesseract restituisce spesso spaziature irregolari, righe vuote multiple,
spazi non separabili e il form feed di fine pagina. La normalizzazione riduce
la variabilità senza correggere semanticamente il testo.
"""

from __future__ import annotations
import re


def normalize_ocr_text(text: str) -> str:
    """
    @brief Normalizza testo OCR per un parsing riga per riga consistente.
    @param text Testo grezzo OCR.
    @return Testo con righe ripulite (trim, spazi compattati, al più una riga vuota di fila).
    """
    t = text.replace("\r\n", "\n").replace("\r", "\n").replace("\f", "\n")
    t = t.replace("\u00a0", " ")
    lines = [re.sub(r"[ \t]+", " ", line).strip() for line in t.split("\n")]
    t = "\n".join(lines)
    t = re.sub(r"\n{3,}", "\n\n", t)
    return t.strip()
