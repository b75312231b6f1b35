"""
@file errors.py
@brief Tassonomia degli errori della pipeline di estrazione.
@ingroup core_module

@details
Ogni errore porta con sé lo status HTTP con cui va esposto all'esterno.
Parsing fallito e testo OCR vuoto NON sono errori: producono un risultato
degradato ma valido (vedi pipeline.py).
"""

from __future__ import annotations


class PipelineError(Exception):
    """
    @brief Radice degli errori tipizzati della pipeline.
    @param message Messaggio leggibile da restituire al chiamante.
    @param status_code Status HTTP associato.
    """

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InputError(PipelineError):
    """Immagine mancante, troppo grande o non decodificabile."""

    status_code = 400


class AuthenticationError(PipelineError):
    """Credenziale bearer mancante o non valida."""

    status_code = 401


class UpstreamRejected(PipelineError):
    """Richiesta rifiutata dal servizio esterno (400 malformata / 403 accesso negato)."""

    status_code = 400


class UpstreamRateLimited(PipelineError):
    """Limite richieste del servizio esterno superato."""

    status_code = 429


class UpstreamError(PipelineError):
    """Errore inatteso di un servizio esterno (5xx, rete, motore OCR)."""

    status_code = 500


class InternalError(PipelineError):
    """Qualunque altra eccezione intercettata al confine dell'orchestratore."""

    status_code = 500
