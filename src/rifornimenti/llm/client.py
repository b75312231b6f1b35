"""
@file client.py
@brief Client HTTP per il backend di completamento (Gemini generateContent).
@ingroup llm_module

@details
Responsabilità:
- costruire la richiesta deterministica (temperatura bassa, risposta JSON)
- allegare opzionalmente l'immagine inline
- mappare gli status HTTP sugli errori tipizzati della pipeline
- un solo retry limitato su 429/5xx (mai su 400/403)
"""

from __future__ import annotations
import base64
import logging
import time
from typing import Any, Optional, Protocol

import requests

from rifornimenti.domain.models import RawDocument
from rifornimenti.errors import UpstreamError, UpstreamRateLimited, UpstreamRejected

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


class CompletionClient(Protocol):
    def complete(self, prompt: str, image: Optional[RawDocument] = None) -> str: ...


def raise_for_upstream_status(status_code: int, body: str, service: str) -> None:
    """
    @brief Converte uno status HTTP di errore in eccezione tipizzata.
    @param status_code Status della risposta.
    @param body Corpo della risposta (solo per i log).
    @param service Nome del servizio, per i messaggi.
    """
    if status_code < 400:
        return
    logger.error("%s error: %s %s", service, status_code, body[:500])
    if status_code == 429:
        raise UpstreamRateLimited(f"Limite richieste {service} superato. Riprova tra qualche minuto.")
    if status_code == 400:
        raise UpstreamRejected("Richiesta malformata.", 400)
    if status_code in (401, 403):
        raise UpstreamRejected(f"Accesso negato. Verifica le credenziali {service}.", 403)
    raise UpstreamError(f"Errore {service}: {status_code}")


class GeminiClient:
    """
    @brief Client per l'API generateContent di Gemini.
    @param api_key Chiave API.
    @param model Nome del modello (es. gemini-2.5-flash-lite).
    @param base_url URL base dell'API (v1beta).
    @param temperature Temperatura di generazione (bassa per output deterministico).
    @param max_output_tokens Limite di token in uscita.
    @param timeout Timeout HTTP in secondi.
    @param max_retries Numero di retry su errori transitori.
    @param retry_pause Pausa in secondi prima del retry.
    """

    service_name = "Gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash-lite",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        *,
        temperature: float = 0.1,
        max_output_tokens: int = 2048,
        timeout: float = 60.0,
        max_retries: int = 1,
        retry_pause: float = 1.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.retry_pause = retry_pause

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_payload(self, prompt: str, image: Optional[RawDocument] = None) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        if image is not None:
            parts.append(
                {
                    "inline_data": {
                        "mime_type": image.mime_type,
                        "data": base64.b64encode(image.content).decode("ascii"),
                    }
                }
            )
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "temperature": self.temperature,
                "topP": 0.95,
                "topK": 40,
                "maxOutputTokens": self.max_output_tokens,
                "responseMimeType": "application/json",
            },
        }

    def _post(self, payload: dict[str, Any]) -> requests.Response:
        attempts = 1 + self.max_retries
        for attempt in range(1, attempts + 1):
            try:
                resp = requests.post(
                    self.endpoint,
                    headers={"Content-Type": "application/json", "x-goog-api-key": self.api_key},
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                raise UpstreamError(f"Errore di rete verso {self.service_name}: {e}") from e

            if resp.status_code in RETRYABLE_STATUSES and attempt < attempts:
                logger.warning(
                    "%s status %s, retry %d/%d",
                    self.service_name, resp.status_code, attempt, self.max_retries,
                )
                time.sleep(self.retry_pause)
                continue
            break
        return resp

    def complete(self, prompt: str, image: Optional[RawDocument] = None) -> str:
        """
        @brief Invia il prompt (ed eventualmente l'immagine) e ritorna il testo generato.
        @return Testo della prima candidate, atteso contenere un oggetto JSON.

        @throws UpstreamRateLimited, UpstreamRejected, UpstreamError
        """
        logger.info("Chiamata %s (%s) per analisi scontrino", self.service_name, self.model)
        resp = self._post(self.build_payload(prompt, image))
        raise_for_upstream_status(resp.status_code, resp.text, self.service_name)

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamError(f"Risposta {self.service_name} non in formato JSON") from e

        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            content = None

        if not content:
            raise UpstreamError(f"Nessuna risposta da {self.service_name}")
        return content
