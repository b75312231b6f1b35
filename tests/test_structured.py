import pytest

from rifornimenti.llm.prompts import build_extraction_prompt
from rifornimenti.llm.structured import (
    PARSE_FAILURE_WARNING,
    ParsedReply,
    ParseFailure,
    StructuredFieldExtractor,
    parse_json_object,
    parse_model_reply,
    strip_code_fences,
)

from conftest import FakeCompletionClient, SAMPLE_RECEIPT


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"targa": "AB123CD"}\n```') == '{"targa": "AB123CD"}'
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_parse_json_object_repairs_surrounding_text():
    assert parse_json_object('Ecco i dati: {"quantita": 45.5} spero sia utile') == {"quantita": 45.5}


@pytest.mark.parametrize("content", ["non so", '{"targa": "AB', "[1, 2]", "", "null"])
def test_unrecoverable_replies_become_parse_failure(content):
    outcome = parse_model_reply(content)
    assert isinstance(outcome, ParseFailure)
    assert outcome.confidence == 0
    assert outcome.warnings == (PARSE_FAILURE_WARNING,)
    assert outcome.fields.filled_count() == 0


def test_fenced_reply_is_parsed():
    outcome = parse_model_reply('```json\n{"targa": "ab 123 cd", "importo_totale": 81.4}\n```')
    assert isinstance(outcome, ParsedReply)
    assert outcome.fields.targa == "AB123CD"
    assert outcome.fields.importo_totale == 81.4


def test_legacy_odometer_key_is_accepted():
    outcome = parse_model_reply('{"chilometri": 125000}')
    assert outcome.fields.chilometraggio == 125000


def test_invalid_fields_are_dropped_individually():
    outcome = parse_model_reply('{"quantita": "45,50", "data_rifornimento": "ieri", "prezzo_unitario": 1.789}')
    assert isinstance(outcome, ParsedReply)
    assert outcome.fields.quantita is None
    assert outcome.fields.data_rifornimento is None
    assert outcome.fields.prezzo_unitario == 1.789
    assert set(outcome.dropped) == {"quantita", "data_rifornimento"}


def test_model_dates_are_normalized():
    outcome = parse_model_reply('{"data_rifornimento": "12/01/2025", "targa": ""}')
    assert outcome.fields.data_rifornimento == "2025-01-12"
    assert outcome.fields.targa is None


def test_prompt_lists_catalog_names_and_text():
    prompt = build_extraction_prompt(SAMPLE_RECEIPT, ["Diesel", "GPL"])
    assert "I valori validi sono SOLO: Diesel, GPL." in prompt
    assert "TOTALE EURO 81,40" in prompt


def test_prompt_without_catalog_uses_common_types():
    prompt = build_extraction_prompt("", [])
    assert "Tipi comuni: Diesel, Benzina" in prompt
    assert "(vedi immagine allegata)" in prompt


def test_extractor_sends_prompt_and_parses_reply():
    client = FakeCompletionClient('{"targa": "AB123CD"}')
    outcome = StructuredFieldExtractor(client).extract(SAMPLE_RECEIPT, ["Diesel"])
    assert outcome.fields.targa == "AB123CD"
    assert len(client.prompts) == 1
    assert "SOLO: Diesel" in client.prompts[0]
    assert client.images == [None]


def test_non_finite_numbers_are_dropped():
    outcome = parse_model_reply(
        '{"chilometraggio": Infinity, "quantita": NaN, "prezzo_unitario": -Infinity, "importo_totale": 81.4}'
    )
    assert isinstance(outcome, ParsedReply)
    assert outcome.fields.chilometraggio is None
    assert outcome.fields.quantita is None
    assert outcome.fields.prezzo_unitario is None
    assert outcome.fields.importo_totale == 81.4
    assert set(outcome.dropped) == {"chilometraggio", "quantita", "prezzo_unitario"}


def test_invalid_odometer_under_both_keys_is_dropped():
    outcome = parse_model_reply('{"chilometraggio": "x", "chilometri": "y", "targa": "AB123CD"}')
    assert isinstance(outcome, ParsedReply)
    assert outcome.fields.chilometraggio is None
    assert outcome.fields.targa == "AB123CD"
    assert set(outcome.dropped) == {"chilometraggio", "chilometri"}
