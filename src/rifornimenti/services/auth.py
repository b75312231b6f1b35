"""
@file auth.py
@brief Verifica della credenziale bearer del chiamante.
@ingroup services_module

@details
Contratto: header Authorization in ingresso, id utente in uscita oppure
AuthenticationError. Due implementazioni:
- StaticTokenVerifier: token configurati localmente (RIFORNIMENTI_API_TOKENS)
- SupabaseAuthVerifier: GET /auth/v1/user sul progetto Supabase
"""

from __future__ import annotations
import logging
from typing import Mapping, Optional, Protocol

import requests

from rifornimenti.errors import AuthenticationError, UpstreamError

logger = logging.getLogger(__name__)


class AuthVerifier(Protocol):
    def verify(self, authorization: Optional[str]) -> str: ...


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    @brief Estrae il token da un header "Bearer <token>".
    @throws AuthenticationError Se l'header manca o non è nel formato atteso.
    """
    if not authorization:
        raise AuthenticationError("Non autorizzato - header mancante")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Non autorizzato - formato header non valido")
    return token.strip()


class StaticTokenVerifier:
    """
    @brief Verifica su una mappa token -> id utente.
    @param tokens Token ammessi.
    """

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self.tokens = dict(tokens)

    def verify(self, authorization: Optional[str]) -> str:
        token = extract_bearer_token(authorization)
        user_id = self.tokens.get(token)
        if user_id is None:
            raise AuthenticationError("Non autorizzato - token non valido")
        return user_id


class SupabaseAuthVerifier:
    """
    @brief Verifica remota del JWT utente tramite Supabase Auth.
    @param url URL del progetto Supabase.
    @param anon_key Chiave anon (header apikey).
    @param timeout Timeout HTTP in secondi.
    """

    def __init__(self, url: str, anon_key: str, timeout: float = 10.0) -> None:
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout

    def verify(self, authorization: Optional[str]) -> str:
        token = extract_bearer_token(authorization)
        try:
            resp = requests.get(
                f"{self.url}/auth/v1/user",
                headers={"Authorization": f"Bearer {token}", "apikey": self.anon_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Servizio di autenticazione non raggiungibile: {e}") from e

        if resp.status_code in (401, 403):
            logger.warning("Autenticazione fallita: %s", resp.text[:200])
            raise AuthenticationError("Non autorizzato - utente non trovato")
        if resp.status_code >= 400:
            raise UpstreamError(f"Errore servizio di autenticazione: {resp.status_code}")

        user_id = (resp.json() or {}).get("id")
        if not user_id:
            raise AuthenticationError("Non autorizzato - utente non trovato")
        return str(user_id)


class AllowAllVerifier:
    """Verifica fittizia per l'uso locale da CLI (nessun chiamante remoto)."""

    def __init__(self, user_id: str = "cli") -> None:
        self.user_id = user_id

    def verify(self, authorization: Optional[str]) -> str:
        return self.user_id
