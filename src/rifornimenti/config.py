"""
@file config.py
@brief Configurazione applicativa da variabili d'ambiente e file .env.
@ingroup core_module

@details
Tutte le chiavi sono sovrascrivibili con variabili `RIFORNIMENTI_<CHIAVE>`
(es. RIFORNIMENTI_GEMINI_API_KEY). Un file .env nella directory corrente
viene caricato senza sovrascrivere variabili già impostate.
"""

from __future__ import annotations
import logging
from functools import lru_cache
from typing import Dict, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_FOUND_ENV = find_dotenv(usecwd=True)
if _FOUND_ENV:
    load_dotenv(dotenv_path=_FOUND_ENV, override=False)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseSettings):
    """
    @brief Impostazioni del servizio.
    @details
    - ocr_*: parametri Tesseract
    - gemini_* / llm_*: backend di completamento strutturato (opzionale)
    - api_tokens: mappa token bearer -> id utente per la verifica locale
    - supabase_*: verifica remota del token (opzionale)
    """

    model_config = SettingsConfigDict(env_prefix="RIFORNIMENTI_", extra="ignore")

    db_path: str = "data/rifornimenti.sqlite"

    ocr_lang: str = "ita"
    ocr_psm: int = 6

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash-lite"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    llm_temperature: float = 0.1
    llm_max_output_tokens: int = 2048
    llm_timeout: float = 60.0
    llm_max_retries: int = 1
    send_image_to_model: bool = False

    heuristic_fallback: bool = True
    max_image_bytes: int = 10 * 1024 * 1024

    api_tokens: Dict[str, str] = Field(default_factory=dict)
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None

    log_level: str = "INFO"

    @property
    def max_base64_length(self) -> float:
        # base64 espande di ~1.37x la dimensione decodificata
        return self.max_image_bytes * 1.37


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Ritorna l'istanza condivisa delle impostazioni."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """
    @brief Configura il logging root per API e CLI.
    @param level Livello (DEBUG, INFO, WARNING, ...).
    """
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
