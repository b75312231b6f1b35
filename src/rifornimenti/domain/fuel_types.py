"""
@file fuel_types.py
@brief Riconciliazione del tipo carburante rilevato con il catalogo attivo.
@ingroup domain_module

@details
Strategia, in ordine:
1. match esatto case-insensitive
2. contenimento bidirezionale (ordine del catalogo)
3. dizionario di varianti OCR note per ciascuna voce del catalogo
Se nulla corrisponde si restituisce la stringa rilevata invariata: il
chiamante deve trattarla come "da correggere a mano".
"""

from __future__ import annotations
import logging
from typing import Optional, Sequence

from .models import FuelTypeEntry

logger = logging.getLogger(__name__)

FUEL_TYPE_VARIATIONS: dict[str, list[str]] = {
    "diesel": ["gasolio", "gas-oil", "gasoil", "gpl diesel", "diesel+"],
    "benzina": ["super", "unleaded", "senza piombo", "verde", "b10"],
    "gpl": ["gas", "lpg", "autogpl"],
    "metano": ["cng", "gas naturale", "gnc"],
    "adblue": ["ad blue", "def", "urea"],
    "benzina premium": ["v-power", "excellium", "premium unleaded", "100 ottani"],
    "diesel premium": ["v-power diesel", "excellium diesel", "premium diesel"],
    "elettrico": ["electric", "ev", "ricarica"],
}

DEFAULT_FUEL_TYPES = [
    "Diesel",
    "Benzina",
    "GPL",
    "Metano",
    "AdBlue",
    "Benzina Premium",
    "Diesel Premium",
    "Elettrico",
]


def match_fuel_type(detected: Optional[str], catalog: Sequence[FuelTypeEntry]) -> Optional[str]:
    """
    @brief Mappa un tipo carburante rilevato su una voce del catalogo.
    @param detected Stringa rilevata (OCR o modello), può essere None.
    @param catalog Voci attive del catalogo, nell'ordine fornito.
    @return Nome canonico, la stringa originale se non riconosciuta, None se input vuoto o blank
    oppure catalogo vuoto.
    """
    if detected is None or not catalog:
        return None

    normalized = detected.lower().strip()
    if not normalized:
        return None

    for entry in catalog:
        if entry.nome.lower() == normalized:
            return entry.nome

    for entry in catalog:
        name = entry.nome.lower()
        if name in normalized or normalized in name:
            return entry.nome

    for entry in catalog:
        variants = FUEL_TYPE_VARIATIONS.get(entry.nome.lower())
        if variants and any(v in normalized for v in variants):
            return entry.nome

    logger.info("Tipo carburante non riconosciuto, da correggere a mano: %r", detected)
    return detected
