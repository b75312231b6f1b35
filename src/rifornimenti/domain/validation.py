"""
@file validation.py
@brief Controlli di coerenza e plausibilità sui campi estratti, con punteggio di confidenza.
@ingroup domain_module

@details
Ogni controllo è indipendente: aggiunge un warning leggibile e sottrae punti
da una confidenza iniziale di 100. Il clamp in [0, 100] e l'arrotondamento
sono applicati una sola volta alla fine.

Le correzioni proposte (overlay sparso) non rientrano nei controlli: le
applica l'orchestratore dopo la validazione.

Le soglie numeriche sono tarate sul mercato italiano.
"""

from __future__ import annotations
import logging
import math
import re
from datetime import date
from typing import Any, Optional

from .models import REQUIRED_FIELDS, ReceiptFields, ValidationOutcome

logger = logging.getLogger(__name__)

PLATE_FORMAT_RE = re.compile(r"^[A-Z]{2}\d{3}[A-Z]{2}$")

ARITHMETIC_TOLERANCE_PCT = 5.0
UNIT_PRICE_RANGE = (0.50, 4.00)
QUANTITY_RANGE = (1.0, 150.0)
TOTAL_RANGE = (5.0, 400.0)
MAX_ODOMETER = 999_999
MIN_COMPLETENESS_PCT = 70.0


def round_half_up(value: float) -> int:
    """Arrotondamento commerciale (0.5 -> 1), non bancario come round()."""
    return int(math.floor(value + 0.5))


def _fmt(value: float) -> str:
    return f"{value:g}"


def _one_year_before(today: date) -> date:
    try:
        return today.replace(year=today.year - 1)
    except ValueError:
        # 29 febbraio
        return today.replace(year=today.year - 1, day=28)


class _Scorer:
    """Accumula warning, penalità e correzioni durante la validazione."""

    def __init__(self) -> None:
        self.penalty = 0.0
        self.warnings: list[str] = []
        self.corrections: dict[str, Any] = {}

    def flag(self, message: str, penalty: float) -> None:
        self.warnings.append(message)
        self.penalty += penalty

    def confidence(self) -> int:
        return round_half_up(max(0.0, min(100.0, 100.0 - self.penalty)))


def _check_arithmetic(f: ReceiptFields, s: _Scorer) -> None:
    if f.quantita is None or f.prezzo_unitario is None or f.importo_totale is None:
        return
    computed = f.quantita * f.prezzo_unitario
    difference = abs(computed - f.importo_totale)
    if f.importo_totale == 0:
        inconsistent = difference > 0
    else:
        inconsistent = difference / f.importo_totale * 100 > ARITHMETIC_TOLERANCE_PCT
    if inconsistent:
        s.flag(
            f"Incoerenza matematica: {_fmt(f.quantita)}L × €{_fmt(f.prezzo_unitario)}/L = "
            f"€{computed:.2f}, ma totale rilevato = €{_fmt(f.importo_totale)}",
            20,
        )


def _check_unit_price(f: ReceiptFields, s: _Scorer) -> None:
    if f.prezzo_unitario is None:
        return
    low, high = UNIT_PRICE_RANGE
    if f.prezzo_unitario < low or f.prezzo_unitario > high:
        s.flag(
            f"Prezzo unitario sospetto: €{_fmt(f.prezzo_unitario)}/L "
            f"(range normale: €{low:.2f}-€{high:.2f})",
            15,
        )


def _check_quantity(f: ReceiptFields, s: _Scorer) -> None:
    if f.quantita is None:
        return
    low, high = QUANTITY_RANGE
    if f.quantita < low:
        s.flag(f"Quantità troppo bassa: {_fmt(f.quantita)}L (minimo realistico: {low:g}L)", 15)
    if f.quantita > high:
        s.flag(f"Quantità troppo alta: {_fmt(f.quantita)}L (massimo realistico per auto: ~{high:g}L)", 10)


def _check_total(f: ReceiptFields, s: _Scorer) -> None:
    if f.importo_totale is None:
        return
    low, high = TOTAL_RANGE
    if f.importo_totale < low:
        s.flag(f"Importo totale troppo basso: €{_fmt(f.importo_totale)} (minimo realistico: €{low:g})", 10)
    if f.importo_totale > high:
        s.flag(f"Importo totale molto alto: €{_fmt(f.importo_totale)} (massimo comune: ~€{high:g})", 5)


def _check_date(f: ReceiptFields, s: _Scorer, today: date) -> None:
    if f.data_rifornimento is None:
        return
    try:
        refuel = date.fromisoformat(f.data_rifornimento)
    except ValueError:
        logger.warning("Data rifornimento non interpretabile: %r", f.data_rifornimento)
        return
    if refuel > today:
        s.flag(f"Data rifornimento nel futuro: {f.data_rifornimento}", 25)
    if refuel < _one_year_before(today):
        s.flag(f"Data rifornimento molto vecchia: {f.data_rifornimento} (oltre 1 anno fa)", 10)


def _check_plate(f: ReceiptFields, s: _Scorer) -> None:
    if f.targa is None:
        return
    if not PLATE_FORMAT_RE.match(f.targa):
        s.flag(f"Targa non conforme al formato italiano standard: {f.targa}", 10)


def _check_odometer(f: ReceiptFields, s: _Scorer) -> None:
    km = f.chilometraggio
    if km is None:
        return
    if km < 0:
        s.flag(f"Chilometri negativi: {_fmt(km)}", 15)
        s.corrections["chilometraggio"] = None
    if km > MAX_ODOMETER:
        # chilometraggio reale ma alto: segnalato senza correzione
        s.flag(f"Chilometri molto alti: {_fmt(km)} (potrebbe essere un errore OCR)", 5)
    if km != int(km):
        s.flag(f"Chilometri con decimali: {_fmt(km)} (convertito a intero)", 5)
        if km >= 0:
            s.corrections["chilometraggio"] = round_half_up(km)


def _check_completeness(f: ReceiptFields, s: _Scorer) -> None:
    filled = f.filled_count()
    total = len(REQUIRED_FIELDS)
    completeness = filled / total * 100
    if completeness < MIN_COMPLETENESS_PCT:
        s.flag(
            f"Dati incompleti: solo {filled}/{total} campi rilevati ({round_half_up(completeness)}%)",
            (100 - completeness) / 2,
        )


def validate_fields(fields: ReceiptFields, today: Optional[date] = None) -> ValidationOutcome:
    """
    @brief Esegue tutti i controlli e calcola la confidenza.
    @param fields Campi estratti (dopo la riconciliazione del tipo carburante).
    @param today Data di riferimento per i controlli temporali (default: oggi).
    @return ValidationOutcome con confidenza in [0, 100], warning e correzioni.
    """
    today = today or date.today()
    scorer = _Scorer()

    _check_arithmetic(fields, scorer)
    _check_unit_price(fields, scorer)
    _check_quantity(fields, scorer)
    _check_total(fields, scorer)
    _check_date(fields, scorer, today)
    _check_plate(fields, scorer)
    _check_odometer(fields, scorer)
    _check_completeness(fields, scorer)

    outcome = ValidationOutcome(
        confidence=scorer.confidence(),
        warnings=scorer.warnings,
        corrections=scorer.corrections,
    )
    logger.info(
        "Validazione: confidence=%d%%, warnings=%d", outcome.confidence, len(outcome.warnings)
    )
    return outcome


def apply_corrections(fields: ReceiptFields, corrections: dict[str, Any]) -> ReceiptFields:
    """
    @brief Applica l'overlay di correzioni una sola volta, sostituendo solo i campi indicati.
    @return Nuovo ReceiptFields con chilometraggio sempre intero (o None).
    """
    merged = fields.model_copy(update=corrections)
    km = merged.chilometraggio
    if km is not None and not isinstance(km, int):
        merged = merged.model_copy(update={"chilometraggio": round_half_up(km)})
    return merged
