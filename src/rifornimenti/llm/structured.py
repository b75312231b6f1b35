"""
@file structured.py
@brief Estrazione strutturata dei campi tramite modello generativo e parsing robusto della risposta.
@ingroup llm_module

@details
La risposta del modello è un payload non fidato. Il parsing produce un
risultato etichettato (ParsedReply | ParseFailure) invece di sollevare:
1. rimozione dei code fence markdown
2. json.loads diretto
3. riparazione limitata: sottostringa tra la prima '{' e l'ultima '}'
4. altrimenti ParseFailure con campi nulli, confidenza 0 e warning "parse failure"

Le virgole decimali NON vengono rinormalizzate: il formato numerico è un
vincolo del prompt. Un campo con tipo non valido viene scartato (None)
senza invalidare il resto della risposta.
"""

from __future__ import annotations
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union

from pydantic import AliasChoices, ValidationError

from rifornimenti.domain.models import RawDocument, ReceiptFields
from .client import CompletionClient
from .prompts import build_extraction_prompt

logger = logging.getLogger(__name__)

PARSE_FAILURE_WARNING = "parse failure"

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)


@dataclass(frozen=True)
class ParsedReply:
    """Risposta interpretata: campi tipizzati ed eventuali chiavi scartate."""
    fields: ReceiptFields
    dropped: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParseFailure:
    """Risposta non recuperabile: esito degradato ma valido."""
    reason: str
    fields: ReceiptFields = field(default_factory=ReceiptFields)
    confidence: int = 0
    warnings: tuple[str, ...] = (PARSE_FAILURE_WARNING,)


ParseOutcome = Union[ParsedReply, ParseFailure]


def strip_code_fences(content: str) -> str:
    """Rimuove ```json ... ``` attorno al contenuto."""
    return _FENCE_RE.sub("", content.strip()).strip()


def parse_json_object(content: str) -> Optional[dict[str, Any]]:
    """
    @brief Interpreta il contenuto come oggetto JSON, con un solo tentativo di riparazione.
    @param content Testo generato dal modello.
    @return Dizionario o None se né il parsing diretto né la riparazione riescono.
    """
    cleaned = strip_code_fences(content)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def _input_keys() -> dict[str, set[str]]:
    """Chiave in ingresso (nome o alias) -> tutte le chiavi che alimentano lo stesso campo."""
    keys: dict[str, set[str]] = {}
    for name, info in ReceiptFields.model_fields.items():
        group = {name}
        alias = info.validation_alias
        if isinstance(alias, AliasChoices):
            group.update(c for c in alias.choices if isinstance(c, str))
        elif isinstance(alias, str):
            group.add(alias)
        for key in group:
            keys[key] = group
    return keys


def coerce_fields(payload: dict[str, Any]) -> ParseOutcome:
    """
    @brief Valida il payload come ReceiptFields scartando i soli campi non validi.
    @param payload Oggetto JSON del modello.
    @return ParsedReply con le chiavi scartate in `dropped`; ParseFailure se
    anche il payload ripulito non è valido.
    """
    try:
        return ParsedReply(fields=ReceiptFields.model_validate(payload))
    except ValidationError as e:
        failed = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}

    # un campo scartato perde anche gli alias, altrimenti l'alias rimasto viene rivalidato
    aliases = _input_keys()
    bad: set[str] = set()
    for key in failed:
        bad |= aliases.get(key, {key})
    dropped = tuple(sorted(k for k in bad if k in payload))
    logger.warning("Campi non validi nella risposta del modello, scartati: %s", list(dropped))

    cleaned = {k: v for k, v in payload.items() if k not in bad}
    try:
        return ParsedReply(fields=ReceiptFields.model_validate(cleaned), dropped=dropped)
    except ValidationError as e:
        logger.error("Risposta del modello non valida anche dopo lo scarto dei campi: %s", e)
        return ParseFailure(reason="invalid_fields")


def parse_model_reply(content: str) -> ParseOutcome:
    """
    @brief Interpreta la risposta del modello senza mai sollevare eccezioni di parsing.
    @param content Testo generato dal modello.
    @return ParsedReply oppure ParseFailure.
    """
    payload = parse_json_object(content or "")
    if payload is None:
        logger.error("Risposta del modello non interpretabile: %r", (content or "")[:500])
        return ParseFailure(reason="invalid_json")
    return coerce_fields(payload)


class StructuredFieldExtractor:
    """
    @brief Estrattore primario basato su modello generativo.
    @param client Backend di completamento (es. GeminiClient).
    """

    def __init__(self, client: CompletionClient) -> None:
        self.client = client

    def extract(
        self,
        ocr_text: str,
        fuel_type_names: Sequence[str],
        image: Optional[RawDocument] = None,
    ) -> ParseOutcome:
        """
        @brief Interroga il modello e interpreta la risposta.
        @param ocr_text Testo riconosciuto.
        @param fuel_type_names Nomi attivi del catalogo (unici valori ammessi per tipo_carburante).
        @param image Immagine da allegare inline (opzionale).
        @return ParsedReply | ParseFailure. Gli errori di trasporto si propagano tipizzati.
        """
        prompt = build_extraction_prompt(ocr_text, fuel_type_names)
        content = self.client.complete(prompt, image=image)
        return parse_model_reply(content)
