import pytest
import requests

from rifornimenti.errors import AuthenticationError, UpstreamError
from rifornimenti.services.auth import StaticTokenVerifier, SupabaseAuthVerifier, extract_bearer_token


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


@pytest.mark.parametrize(
    "header,message",
    [
        (None, "Non autorizzato - header mancante"),
        ("", "Non autorizzato - header mancante"),
        ("Token abc", "Non autorizzato - formato header non valido"),
        ("Bearer ", "Non autorizzato - formato header non valido"),
    ],
)
def test_extract_bearer_token_rejects(header, message):
    with pytest.raises(AuthenticationError) as exc:
        extract_bearer_token(header)
    assert exc.value.message == message
    assert exc.value.status_code == 401


def test_extract_bearer_token():
    assert extract_bearer_token("bearer abc.def") == "abc.def"


def test_static_verifier():
    verifier = StaticTokenVerifier({"tok-1": "user-1"})
    assert verifier.verify("Bearer tok-1") == "user-1"
    with pytest.raises(AuthenticationError):
        verifier.verify("Bearer tok-2")


def test_static_verifier_without_tokens_denies_everything():
    with pytest.raises(AuthenticationError):
        StaticTokenVerifier({}).verify("Bearer qualsiasi")


def test_supabase_verifier(monkeypatch):
    calls = []

    def fake_get(url, headers=None, timeout=None):
        calls.append((url, headers))
        if headers["Authorization"] == "Bearer buono":
            return FakeResponse(200, {"id": "uuid-1"})
        return FakeResponse(401, {"msg": "invalid JWT"})

    monkeypatch.setattr("rifornimenti.services.auth.requests.get", fake_get)
    verifier = SupabaseAuthVerifier("https://progetto.supabase.co/", "anon")

    assert verifier.verify("Bearer buono") == "uuid-1"
    assert calls[0][0] == "https://progetto.supabase.co/auth/v1/user"
    assert calls[0][1]["apikey"] == "anon"
    with pytest.raises(AuthenticationError):
        verifier.verify("Bearer scaduto")


def test_supabase_unreachable(monkeypatch):
    def fake_get(url, headers=None, timeout=None):
        raise requests.ConnectionError("down")

    monkeypatch.setattr("rifornimenti.services.auth.requests.get", fake_get)
    with pytest.raises(UpstreamError):
        SupabaseAuthVerifier("https://x.supabase.co", "anon").verify("Bearer t")
