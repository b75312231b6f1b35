"""
@file main.py
@brief Entry point FastAPI ed exception handler.
@ingroup api_module

@details
Ogni PipelineError diventa {"error": messaggio} con il suo status; qualunque
altra eccezione diventa un 500 con il messaggio originale.
"""

from __future__ import annotations
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rifornimenti.config import configure_logging, get_settings
from rifornimenti.errors import PipelineError
from .routes import router

logger = logging.getLogger(__name__)

configure_logging(get_settings().log_level)

app = FastAPI(title="Rifornimenti OCR API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)
app.include_router(router)


@app.exception_handler(PipelineError)
def pipeline_error_handler(request: Request, exc: PipelineError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Errore non gestito su %s", request.url.path)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Errore sconosciuto"})
