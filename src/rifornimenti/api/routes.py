"""
@file routes.py
@brief Endpoints HTTP per OCR scontrino carburante e health.
@ingroup api_module

@details
Espone API minimali:
- GET /health
- POST /ocr-receipt
"""

from __future__ import annotations
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel

from rifornimenti.config import get_settings
from rifornimenti.domain.models import ExtractionResult
from rifornimenti.pipeline import ExtractionOrchestrator, build_orchestrator

router = APIRouter()


class OcrReceiptRequest(BaseModel):
    """
    @brief Payload OCR.
    @details
    image_base64 è opzionale a livello di schema: l'assenza è segnalata dalla
    pipeline con un 400 esplicito invece del 422 di validazione.
    """
    image_base64: Optional[str] = None


def get_orchestrator() -> ExtractionOrchestrator:
    return build_orchestrator(get_settings())


def result_to_payload(result: ExtractionResult) -> dict[str, Any]:
    """
    @brief Serializza il risultato nel contratto di risposta.
    @details
    confidence_score presente solo se l'estrazione è andata oltre il testo
    vuoto; validation_warnings solo se non vuoto.
    """
    data: dict[str, Any] = result.fields.model_dump()
    data["raw_text"] = result.raw_text
    if result.confidence is not None:
        data["confidence_score"] = result.confidence
    if result.warnings:
        data["validation_warnings"] = list(result.warnings)
    return {
        "success": True,
        "data": data,
        "available_fuel_types": list(result.available_fuel_types),
    }


@router.post("/ocr-receipt")
def ocr_receipt(
    req: OcrReceiptRequest,
    authorization: Optional[str] = Header(default=None),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
):
    """
    @brief Esegue OCR, estrazione e validazione dello scontrino.
    @param req OcrReceiptRequest con immagine base64.
    @param authorization Header "Bearer <token>".
    @return JSON con success, data e available_fuel_types.

    @note Gli errori tipizzati sono convertiti in {"error": ...} dagli exception handler.
    """
    result = orchestrator.run(authorization, req.image_base64)
    return result_to_payload(result)


@router.get("/health")
def health():
    """
    @brief Healthcheck semplice.
    @return {"ok": True}
    """
    return {"ok": True}
