"""
@file prompts.py
@brief Prompt per l'estrazione strutturata dei campi tramite modello generativo.
@ingroup llm_module

@details
Il prompt vincola:
- i valori ammessi per tipo_carburante (solo i nomi attivi del catalogo)
- il formato dei numeri (punto decimale, nessun simbolo di valuta)
- il formato data (YYYY-MM-DD)
- l'output: un solo oggetto JSON con le chiavi di ReceiptFields
"""

from __future__ import annotations
from typing import Sequence

from rifornimenti.domain.fuel_types import DEFAULT_FUEL_TYPES

EXPECTED_KEYS = (
    "targa",
    "punto_vendita",
    "data_rifornimento",
    "tipo_carburante",
    "quantita",
    "prezzo_unitario",
    "importo_totale",
    "chilometraggio",
)

OUTPUT_EXAMPLE = """{
  "targa": "AB123CD",
  "punto_vendita": "ENI Station Via Roma",
  "data_rifornimento": "2025-01-07",
  "tipo_carburante": "Diesel",
  "quantita": 45.50,
  "prezzo_unitario": 1.789,
  "importo_totale": 81.40,
  "chilometraggio": 125000
}"""

EXTRACTION_PROMPT_TEMPLATE = """# RUOLO
Sei un sistema di estrazione dati da scontrini di rifornimento carburante italiani.

# CAMPI DA ESTRARRE
1. targa: targa del veicolo, formato italiano (2 lettere, 3 cifre, 2 lettere, es. AB123CD). Etichette tipiche: TARGA, VEICOLO, AUTO.
2. punto_vendita: nome della stazione di servizio (intestazione, logo, ragione sociale).
3. data_rifornimento: data del rifornimento in formato YYYY-MM-DD.
4. tipo_carburante: {fuel_instructions}
   Mappature comuni: GASOLIO -> Diesel, SUPER/VERDE -> Benzina, AUTOGPL -> GPL, GNC -> Metano.
5. quantita: litri erogati (LITRI, LT, QTA, QUANTITA, VOLUME).
6. prezzo_unitario: prezzo al litro in euro (P.U., EUR/L, PREZZO/LITRO, PREZZO UNITARIO).
7. importo_totale: importo pagato in euro (TOTALE, IMPORTO, DA PAGARE, EURO).
8. chilometraggio: chilometri del veicolo (KM, CHILOMETRI, ODO, ODOMETRO, CONTACHILOMETRI), spesso nella forma "125.000 km" o "km 5000".

# REGOLE
- Usa null per i campi assenti o illeggibili: non inventare dati.
- Numeri con il PUNTO decimale (45.50, non 45,50) e senza simboli di valuta.
- chilometraggio è un numero INTERO: rimuovi i separatori delle migliaia ("125.000" -> 125000).
- Date sempre in formato YYYY-MM-DD.
- Cerca in tutto il testo, non solo nelle righe centrali.

# FORMATO OUTPUT
Rispondi SOLO con un oggetto JSON valido con esattamente queste chiavi, senza markdown né spiegazioni:
{output_example}

# TESTO OCR DA ANALIZZARE
{ocr_text}
"""


def build_fuel_instructions(fuel_type_names: Sequence[str]) -> str:
    """Vincolo sui valori ammessi per tipo_carburante."""
    if fuel_type_names:
        return (
            f"I valori validi sono SOLO: {', '.join(fuel_type_names)}. "
            "Mappa il tipo trovato su uno di questi valori."
        )
    return f"Tipi comuni: {', '.join(DEFAULT_FUEL_TYPES)}."


def build_extraction_prompt(ocr_text: str, fuel_type_names: Sequence[str]) -> str:
    """
    @brief Costruisce il prompt di estrazione.
    @param ocr_text Testo riconosciuto (vuoto se si invia solo l'immagine).
    @param fuel_type_names Nomi attivi del catalogo carburanti.
    @return Prompt completo.
    """
    return EXTRACTION_PROMPT_TEMPLATE.format(
        fuel_instructions=build_fuel_instructions(fuel_type_names),
        output_example=OUTPUT_EXAMPLE,
        ocr_text=ocr_text.strip() or "(vedi immagine allegata)",
    )
