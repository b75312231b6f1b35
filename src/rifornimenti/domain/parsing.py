"""
@file parsing.py
@brief Parsing euristico del testo OCR di uno scontrino carburante.
@ingroup domain_module

@details
Contiene regole/regex euristiche per estrarre:
- targa, punto vendita, data rifornimento
- tipo carburante (parola chiave grezza, canonicalizzata poi da fuel_types)
- quantità, prezzo unitario, importo totale
- chilometraggio

Politica unica per tutti i campi: le righe sono scandite dall'alto in basso,
per ogni riga si provano i matcher del campo nell'ordine del registry e il
primo successo vince. Un campo già valorizzato non viene più sovrascritto.
Questo modulo non solleva eccezioni: i campi non trovati restano None.
"""

from __future__ import annotations
import re
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from .models import ReceiptFields, format_iso_date

T = TypeVar("T")
Matcher = Callable[[str], Optional[T]]

PLATE_RE = re.compile(r"\b[A-Z]{2}\s*\d{3}\s*[A-Z]{2}\b", re.I)

DATE_DMY_RE = re.compile(r"(?<!\d)(\d{1,2})[\-/](\d{1,2})[\-/](\d{4})(?!\d)")
DATE_YMD_RE = re.compile(r"(?<!\d)(\d{4})[\-/](\d{1,2})[\-/](\d{1,2})(?!\d)")
DATE_TEXT_RE = re.compile(
    r"(?<!\d)(\d{1,2})\s+(gen|feb|mar|apr|mag|giu|lug|ago|set|ott|nov|dic)[a-z]*\.?\s+(\d{4})(?!\d)",
    re.I,
)
ITALIAN_MONTHS = {
    "gen": 1, "feb": 2, "mar": 3, "apr": 4, "mag": 5, "giu": 6,
    "lug": 7, "ago": 8, "set": 9, "ott": 10, "nov": 11, "dic": 12,
}

_NUM = r"(\d+[\.,]\d+)"

QUANTITY_RES = [
    re.compile(r"(?<![/\w])(?:quantit[aà]|litri|lt|l|vol)\b\.?[:\s]*" + _NUM, re.I),
    re.compile(_NUM + r"\s*(?:l|lt|litri)\b", re.I),
]

UNIT_PRICE_RES = [
    re.compile(
        r"(?<!\w)(?:p\.?\s?u\.?|prezzo[/\s]?unit[a-zà]*|(?:€|eur)\s?/\s?l(?:t|itro)?)[:\s]*(?:€\s*)?" + _NUM,
        re.I,
    ),
    re.compile(_NUM + r"\s*(?:€|eur)\s?/\s?l", re.I),
]

TOTAL_RES = [
    re.compile(r"(?<!\w)(?:totale|importo|euro|eur|tot)\b\.?[:\s]*(?:€\s*)?" + _NUM, re.I),
    re.compile(r"€\s*" + _NUM),
]

_KM_VALUE = r"(\d{1,3}(?:[\.,]\d{3})+|\d{1,6})(?!\d)"
ODOMETER_RES = [
    re.compile(r"(?<!\w)(?:odometro|contachilometri|odo)\b\.?[:\s]*" + _KM_VALUE, re.I),
    re.compile(r"(?<!\w)(?:chilometri|kilometri|km)\.?[:\s]+" + _KM_VALUE, re.I),
    re.compile(r"(?<![\d\.,])(\d{1,3}(?:[\.,]\d{3})+|\d{4,6})\s*km\b", re.I),
    re.compile(r"(?<!\w)km\s*(\d{4,6})(?!\d)", re.I),
]

# Soglia minima di plausibilità dell'importo totale (euro)
MIN_TOTAL = 5.0
MAX_ODOMETER = 999_999

VENDOR_BRANDS_RE = re.compile(r"\b(eni|ip|q8|agip|esso|tamoil|shell|total|repsol)\b", re.I)
VENDOR_SCAN_LINES = 5

FUEL_SYNONYMS = [
    (("gasolio", "diesel"), "diesel"),
    (("benzina", "super"), "benzina"),
    (("gpl",), "gpl"),
]


def _lines(text: str) -> list[str]:
    return [l.strip() for l in text.splitlines() if l.strip()]


def _to_decimal(s: str) -> Optional[float]:
    """
    @brief Converte un numero con virgola o punto decimale in float.
    @note Esempio: '45,50' -> 45.5; '1.789' -> 1.789 (nessun separatore migliaia qui).
    """
    try:
        return float(s.replace(",", "."))
    except ValueError:
        return None


def first_match(value: str, matchers: Iterable[Matcher[T]]) -> Optional[T]:
    """
    @brief Combinatore "vince il primo successo".
    @param value Stringa (tipicamente una riga) su cui applicare i matcher.
    @param matchers Funzioni pure str -> valore | None, in ordine di priorità.
    @return Il primo risultato non None, altrimenti None.
    """
    for matcher in matchers:
        result = matcher(value)
        if result is not None:
            return result
    return None


def scan_lines(lines: Sequence[str], matchers: Sequence[Matcher[T]]) -> Optional[T]:
    """Prima riga (dall'alto) su cui almeno un matcher ha successo."""
    for line in lines:
        result = first_match(line, matchers)
        if result is not None:
            return result
    return None


def _number_matcher(pattern: re.Pattern, min_exclusive: Optional[float] = None) -> Matcher[float]:
    def match(line: str) -> Optional[float]:
        m = pattern.search(line)
        if not m:
            return None
        value = _to_decimal(m.group(1))
        if value is None:
            return None
        if min_exclusive is not None and value <= min_exclusive:
            return None
        return value

    return match


def _odometer_matcher(pattern: re.Pattern) -> Matcher[int]:
    def match(line: str) -> Optional[int]:
        m = pattern.search(line)
        if not m:
            return None
        value = int(re.sub(r"[\.,]", "", m.group(1)))
        if 0 <= value <= MAX_ODOMETER:
            return value
        return None

    return match


def match_plate(line: str) -> Optional[str]:
    m = PLATE_RE.search(line)
    if not m:
        return None
    return re.sub(r"\s+", "", m.group(0)).upper()


def match_date_dmy(line: str) -> Optional[str]:
    m = DATE_DMY_RE.search(line)
    if not m:
        return None
    return format_iso_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))


def match_date_ymd(line: str) -> Optional[str]:
    m = DATE_YMD_RE.search(line)
    if not m:
        return None
    return format_iso_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def match_date_text(line: str) -> Optional[str]:
    m = DATE_TEXT_RE.search(line)
    if not m:
        return None
    month = ITALIAN_MONTHS[m.group(2).lower()]
    return format_iso_date(int(m.group(3)), month, int(m.group(1)))


def fuel_type_matchers(fuel_type_names: Sequence[str]) -> list[Matcher[str]]:
    """
    @brief Costruisce i matcher del tipo carburante.
    @param fuel_type_names Nomi attivi del catalogo.
    @return Matcher sulle parole chiave del catalogo (minuscolo) seguiti dai sinonimi fissi.
    """
    matchers: list[Matcher[str]] = []

    for name in fuel_type_names:
        keyword = name.lower().strip()
        if not keyword:
            continue
        matchers.append(lambda line, k=keyword: k if k in line.lower() else None)

    for keywords, family in FUEL_SYNONYMS:
        matchers.append(
            lambda line, ks=keywords, f=family: f if any(k in line.lower() for k in ks) else None
        )

    return matchers


def get_field_matchers_registry(fuel_type_names: Sequence[str] = ()) -> dict[str, list[Matcher]]:
    """
    Registry centralizzato dei matcher per campo, in ordine di priorità.
    Aggiungi qui nuovi pattern senza cambiare lo scanner.
    """
    return {
        "targa": [match_plate],
        "data_rifornimento": [match_date_dmy, match_date_ymd, match_date_text],
        "tipo_carburante": fuel_type_matchers(fuel_type_names),
        "quantita": [_number_matcher(p) for p in QUANTITY_RES],
        "prezzo_unitario": [_number_matcher(p) for p in UNIT_PRICE_RES],
        "importo_totale": [_number_matcher(p, min_exclusive=MIN_TOTAL) for p in TOTAL_RES],
        "chilometraggio": [_odometer_matcher(p) for p in ODOMETER_RES],
    }


def parse_vendor(lines: Sequence[str]) -> Optional[str]:
    """
    @brief Stima il punto vendita dalle prime righe.
    @param lines Righe non vuote del testo OCR.
    @return Prima riga (tra le prime 5) con un marchio noto o con aspetto da intestazione.

    @note Heuristics: marchio noto (eni, ip, q8, ...) oppure riga di lunghezza
    tra 5 e 50 caratteri che inizia con maiuscola.
    """
    for line in lines[:VENDOR_SCAN_LINES]:
        if VENDOR_BRANDS_RE.search(line):
            return line
        if 5 < len(line) < 50 and line[0].isupper():
            return line
    return None


def extract_fields(text: str, fuel_type_names: Sequence[str] = ()) -> ReceiptFields:
    """
    @brief Estrae in modo best-effort i campi dal testo OCR.
    @param text Testo OCR (anche vuoto).
    @param fuel_type_names Nomi attivi del catalogo carburanti.
    @return ReceiptFields con i soli campi rilevati valorizzati.
    """
    lines = _lines(text or "")
    values = {
        field: scan_lines(lines, matchers)
        for field, matchers in get_field_matchers_registry(fuel_type_names).items()
    }
    values["punto_vendita"] = parse_vendor(lines)
    return ReceiptFields(**values)
