"""
@file models.py
@brief Modelli dominio (campi scontrino, esito validazione, risultato) tramite Pydantic.
@ingroup domain_module

@details
Questi modelli fungono da:
- DTO tra layer (OCR/estrazione/validazione/API)
- schema implicito per serializzazione JSON
- punto unico di normalizzazione (date ISO, stringhe vuote -> None)
"""

from __future__ import annotations
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_DMY_RE = re.compile(r"^(\d{1,2})[\-/\.](\d{1,2})[\-/\.](\d{4})$")
_YMD_RE = re.compile(r"^(\d{4})[\-/](\d{1,2})[\-/](\d{1,2})(?:[T\s].*)?$")

REQUIRED_FIELDS = (
    "targa",
    "punto_vendita",
    "data_rifornimento",
    "tipo_carburante",
    "quantita",
    "prezzo_unitario",
    "importo_totale",
)


def format_iso_date(year: int, month: int, day: int) -> Optional[str]:
    """
    @brief Compone una data YYYY-MM-DD verificandone la validità di calendario.
    @return Stringa ISO o None se la data non esiste (es. 31/02).
    """
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_date_string(value: str) -> Optional[str]:
    """
    @brief Normalizza una data testuale in YYYY-MM-DD.
    @param value Data nei formati DD-MM-YYYY, DD/MM/YYYY, DD.MM.YYYY, YYYY-MM-DD, YYYY/MM/DD.
    @return Data ISO o None se il formato non è riconosciuto.

    @note Esempio: '12-01-2025' -> '2025-01-12'; '2025-01-12' resta invariata.
    """
    s = value.strip()
    m = _YMD_RE.match(s)
    if m:
        return format_iso_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = _DMY_RE.match(s)
    if m:
        return format_iso_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    return None


class FuelTypeEntry(BaseModel):
    """@brief Voce del catalogo tipi carburante (sola lettura per la pipeline)."""
    id: int
    nome: str
    descrizione: Optional[str] = None
    attivo: bool = True


class RawDocument(BaseModel):
    """@brief Immagine grezza ricevuta in input, valida per una sola richiesta."""
    content: bytes
    mime_type: str = "image/jpeg"


class ReceiptFields(BaseModel):
    """
    @brief Campi estratti dallo scontrino.
    @details
    Tutti opzionali e indipendenti: None significa "non rilevato", mai zero.
    La chiave `chilometri` (schema storico della risposta del modello) è
    accettata come alias di `chilometraggio`.
    NaN e Infinity non sono numeri validi: il campo viene rifiutato.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True, allow_inf_nan=False)

    targa: Optional[str] = None
    punto_vendita: Optional[str] = None
    data_rifornimento: Optional[str] = None
    tipo_carburante: Optional[str] = None
    quantita: Optional[float] = None
    prezzo_unitario: Optional[float] = None
    importo_totale: Optional[float] = None
    chilometraggio: Optional[Union[int, float]] = Field(
        default=None,
        validation_alias=AliasChoices("chilometraggio", "chilometri"),
    )

    @field_validator("targa", "punto_vendita", "tipo_carburante", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("targa")
    @classmethod
    def _compact_plate(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return re.sub(r"\s+", "", v).upper()

    @field_validator("data_rifornimento", mode="before")
    @classmethod
    def _iso_date(cls, v: Any) -> Any:
        if v is None:
            return None
        if isinstance(v, datetime):
            return v.date().isoformat()
        if isinstance(v, date):
            return v.isoformat()
        if isinstance(v, str):
            if not v.strip():
                return None
            normalized = normalize_date_string(v)
            if normalized is None:
                raise ValueError(f"data non riconosciuta: {v!r}")
            return normalized
        return v

    def filled_count(self) -> int:
        """Numero dei campi obbligatori valorizzati."""
        return sum(1 for name in REQUIRED_FIELDS if getattr(self, name) is not None)


class ValidationOutcome(BaseModel):
    """
    @brief Esito della validazione.
    @details
    corrections è un overlay sparso: contiene solo i campi da sostituire.
    """
    confidence: int = Field(ge=0, le=100)
    warnings: List[str] = Field(default_factory=list)
    corrections: Dict[str, Any] = Field(default_factory=dict)


class ExtractionResult(BaseModel):
    """
    @brief Unico artefatto esposto all'esterno; immutabile dopo la creazione.
    @details
    confidence è None solo quando la pipeline si ferma prima dell'estrazione
    (testo OCR vuoto).
    """
    model_config = ConfigDict(frozen=True)

    fields: ReceiptFields = Field(default_factory=ReceiptFields)
    raw_text: str = ""
    confidence: Optional[int] = None
    warnings: Tuple[str, ...] = ()
    available_fuel_types: Tuple[str, ...] = ()
