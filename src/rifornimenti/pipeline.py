"""
@file pipeline.py
@brief Orchestrazione della pipeline OCR -> estrazione -> riconciliazione -> validazione.
@ingroup core_module

@details
Macchina a stati su una singola richiesta:
AUTHENTICATING -> FETCHING_CATALOG -> RECOGNIZING -> EXTRACTING -> MATCHING
-> VALIDATING -> DONE, con FAILED raggiungibile da ogni fase.

Esiti degradati ma validi (non errori):
- testo OCR vuoto: campi nulli, testo segnaposto, nessuna confidenza
- risposta del modello non interpretabile: confidenza 0 e warning
  "parse failure"; i campi euristici restano disponibili se
  heuristic_fallback è attivo

Ogni altro fallimento diventa un PipelineError tipizzato e nessun risultato
parziale viene prodotto.
"""

from __future__ import annotations
import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Optional, Protocol

from rifornimenti.config import Settings
from rifornimenti.domain.fuel_types import match_fuel_type
from rifornimenti.domain.models import ExtractionResult, FuelTypeEntry, RawDocument, ReceiptFields
from rifornimenti.domain.parsing import extract_fields
from rifornimenti.domain.validation import apply_corrections, validate_fields
from rifornimenti.errors import InputError, InternalError, PipelineError
from rifornimenti.llm.structured import PARSE_FAILURE_WARNING, ParseFailure, StructuredFieldExtractor
from rifornimenti.ocr.engine import TextRecognizer
from rifornimenti.ocr.preprocess import sniff_mime_type
from rifornimenti.services.auth import AuthVerifier

logger = logging.getLogger(__name__)

EMPTY_TEXT_PLACEHOLDER = "Nessun testo estratto dall'immagine"
DEFAULT_MAX_BASE64_LENGTH = 10 * 1024 * 1024 * 1.37


class Stage(str, Enum):
    AUTHENTICATING = "authenticating"
    FETCHING_CATALOG = "fetching_catalog"
    RECOGNIZING = "recognizing"
    EXTRACTING = "extracting"
    MATCHING = "matching"
    VALIDATING = "validating"
    DONE = "done"
    FAILED = "failed"


class FuelTypeCatalog(Protocol):
    def list_active_fuel_types(self) -> list[FuelTypeEntry]: ...


@dataclass
class _RunState:
    stage: Stage = Stage.AUTHENTICATING

    def advance(self, stage: Stage) -> None:
        logger.debug("Pipeline: %s -> %s", self.stage.value, stage.value)
        self.stage = stage


def decode_image_payload(image_base64: Optional[str], max_base64_length: float) -> RawDocument:
    """
    @brief Valida e decodifica l'immagine base64 ricevuta.
    @param image_base64 Contenuto base64 (accetta anche il prefisso data URL).
    @param max_base64_length Lunghezza massima ammessa della stringa base64.
    @return RawDocument con tipo MIME riconosciuto dai byte.

    @throws InputError Se l'immagine manca, è troppo grande o non è base64 valido.
    @note Il limite è applicato sulla stringa, prima di decodificare.
    """
    if not image_base64:
        raise InputError("Immagine non fornita")
    if len(image_base64) > max_base64_length:
        raise InputError("Immagine troppo grande (max 10MB)")

    payload = image_base64
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]

    try:
        content = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InputError("Immagine non in formato base64 valido") from e
    if not content:
        raise InputError("Immagine non fornita")

    return RawDocument(content=content, mime_type=sniff_mime_type(content))


def merge_fields(primary: ReceiptFields, fallback: ReceiptFields) -> ReceiptFields:
    """
    @brief Unisce due estrazioni campo per campo.
    @return primary, con i soli campi None riempiti da fallback.
    """
    filled = {
        name: getattr(fallback, name)
        for name in ReceiptFields.model_fields
        if getattr(primary, name) is None and getattr(fallback, name) is not None
    }
    return primary.model_copy(update=filled)


class ExtractionOrchestrator:
    """
    @brief Esegue la pipeline completa su una richiesta.
    @param auth Verifica della credenziale del chiamante.
    @param catalog Lettore del catalogo tipi carburante.
    @param recognizer Servizio OCR.
    @param structured Estrattore strutturato primario; None = solo euristiche.
    @param max_base64_length Limite sulla stringa base64 in ingresso.
    @param send_image_to_model Se True allega l'immagine anche al modello.
    @param heuristic_fallback Se True i campi euristici sopravvivono a una risposta non interpretabile.
    @param today Fornitore della data di riferimento per la validazione.
    """

    def __init__(
        self,
        auth: AuthVerifier,
        catalog: FuelTypeCatalog,
        recognizer: TextRecognizer,
        structured: Optional[StructuredFieldExtractor] = None,
        *,
        max_base64_length: float = DEFAULT_MAX_BASE64_LENGTH,
        send_image_to_model: bool = False,
        heuristic_fallback: bool = True,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.auth = auth
        self.catalog = catalog
        self.recognizer = recognizer
        self.structured = structured
        self.max_base64_length = max_base64_length
        self.send_image_to_model = send_image_to_model
        self.heuristic_fallback = heuristic_fallback
        self.today = today

    def run(self, authorization: Optional[str], image_base64: Optional[str]) -> ExtractionResult:
        """
        @brief Esegue la pipeline.
        @param authorization Header Authorization del chiamante.
        @param image_base64 Immagine codificata base64.
        @return ExtractionResult completo o degradato.

        @throws PipelineError Tipizzato per ogni fallimento; le eccezioni inattese diventano InternalError.
        """
        state = _RunState()
        try:
            return self._run(state, authorization, image_base64)
        except PipelineError as e:
            logger.error("Pipeline fallita in fase %s: %s", state.stage.value, e.message)
            state.advance(Stage.FAILED)
            raise
        except Exception as e:
            logger.exception("Errore inatteso in fase %s", state.stage.value)
            state.advance(Stage.FAILED)
            raise InternalError(str(e) or e.__class__.__name__) from e

    def _run(self, state: _RunState, authorization: Optional[str], image_base64: Optional[str]) -> ExtractionResult:
        user_id = self.auth.verify(authorization)
        logger.info("Utente autenticato: %s", user_id)

        document = decode_image_payload(image_base64, self.max_base64_length)

        state.advance(Stage.FETCHING_CATALOG)
        catalog = [entry for entry in self.catalog.list_active_fuel_types() if entry.attivo]
        names = [entry.nome for entry in catalog]
        logger.info("Tipi carburante disponibili: %s", ", ".join(names))

        state.advance(Stage.RECOGNIZING)
        text = self.recognizer.recognize(document.content, document.mime_type).text or ""

        if not text.strip():
            logger.warning("Nessun testo estratto dal documento")
            state.advance(Stage.DONE)
            return ExtractionResult(raw_text=EMPTY_TEXT_PLACEHOLDER, available_fuel_types=names)

        state.advance(Stage.EXTRACTING)
        fields, parse_failed = self._extract(text, names, document)
        if parse_failed and not self.heuristic_fallback:
            state.advance(Stage.DONE)
            return ExtractionResult(
                raw_text=text,
                confidence=0,
                warnings=[PARSE_FAILURE_WARNING],
                available_fuel_types=names,
            )

        state.advance(Stage.MATCHING)
        if fields.tipo_carburante is not None:
            detected = fields.tipo_carburante
            matched = match_fuel_type(detected, catalog)
            logger.info("Mappatura tipo carburante: %r -> %r", detected, matched)
            fields = fields.model_copy(update={"tipo_carburante": matched})

        state.advance(Stage.VALIDATING)
        outcome = validate_fields(fields, today=self.today())
        if outcome.warnings:
            logger.info("Warning di validazione: %s", outcome.warnings)
        fields = apply_corrections(fields, outcome.corrections)

        confidence = outcome.confidence
        warnings = list(outcome.warnings)
        if parse_failed:
            confidence = 0
            warnings.insert(0, PARSE_FAILURE_WARNING)

        state.advance(Stage.DONE)
        logger.info("OCR completato per utente %s (confidence=%d)", user_id, confidence)
        return ExtractionResult(
            fields=fields,
            raw_text=text,
            confidence=confidence,
            warnings=warnings,
            available_fuel_types=names,
        )

    def _extract(self, text: str, names: list[str], document: RawDocument) -> tuple[ReceiptFields, bool]:
        heuristic = extract_fields(text, names)
        if self.structured is None:
            return heuristic, False

        image = document if self.send_image_to_model else None
        outcome = self.structured.extract(text, names, image=image)
        if isinstance(outcome, ParseFailure):
            logger.warning("Risposta del modello non interpretabile (%s)", outcome.reason)
            return (heuristic if self.heuristic_fallback else outcome.fields), True

        if outcome.dropped:
            logger.info("Campi scartati dalla risposta del modello: %s", ", ".join(outcome.dropped))
        return merge_fields(outcome.fields, heuristic), False


def build_orchestrator(settings: Settings, auth: Optional[AuthVerifier] = None) -> ExtractionOrchestrator:
    """
    @brief Costruisce l'orchestratore con i collaboratori di default.
    @param settings Impostazioni applicative.
    @param auth Verifica da usare al posto di quella derivata dalle impostazioni.
    """
    from rifornimenti.llm.client import GeminiClient
    from rifornimenti.ocr.engine import TesseractRecognizer
    from rifornimenti.services.auth import StaticTokenVerifier, SupabaseAuthVerifier
    from rifornimenti.storage.repository import SqliteFuelTypeCatalog

    if auth is None:
        if settings.supabase_url and settings.supabase_anon_key:
            auth = SupabaseAuthVerifier(settings.supabase_url, settings.supabase_anon_key)
        else:
            auth = StaticTokenVerifier(settings.api_tokens)

    structured = None
    if settings.gemini_api_key:
        structured = StructuredFieldExtractor(
            GeminiClient(
                settings.gemini_api_key,
                settings.gemini_model,
                settings.gemini_base_url,
                temperature=settings.llm_temperature,
                max_output_tokens=settings.llm_max_output_tokens,
                timeout=settings.llm_timeout,
                max_retries=settings.llm_max_retries,
            )
        )
    else:
        logger.warning("Chiave Gemini non configurata: estrazione solo euristica")

    return ExtractionOrchestrator(
        auth=auth,
        catalog=SqliteFuelTypeCatalog(settings.db_path),
        recognizer=TesseractRecognizer(lang=settings.ocr_lang, psm=settings.ocr_psm),
        structured=structured,
        max_base64_length=settings.max_base64_length,
        send_image_to_model=settings.send_image_to_model,
        heuristic_fallback=settings.heuristic_fallback,
    )
