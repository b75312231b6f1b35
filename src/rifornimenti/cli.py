"""
@file cli.py
@brief CLI per esecuzione pipeline (OCR+estrazione+validazione) e gestione catalogo carburanti.
@ingroup cli_module

@details
Comandi:
- extract: esegue la pipeline su un'immagine locale e stampa il risultato JSON
- fuel-types list|add|enable|disable: gestisce il catalogo su SQLite
- serve: avvia l'API FastAPI con uvicorn

Opzioni rilevanti per tuning OCR:
- --lang / --psm per regolare Tesseract
- --no-llm per forzare l'estrazione solo euristica
"""

from __future__ import annotations
import argparse
import base64
import json
import sys
from pathlib import Path

from rifornimenti.config import Settings, configure_logging, get_settings
from rifornimenti.domain.models import ExtractionResult
from rifornimenti.errors import PipelineError
from rifornimenti.pipeline import build_orchestrator
from rifornimenti.services.auth import AllowAllVerifier
from rifornimenti.storage.db import connect
from rifornimenti.storage.repository import add_fuel_type, list_fuel_types, set_fuel_type_active


def run_extract(image_path: str, settings: Settings) -> ExtractionResult:
    """
    @brief Esegue la pipeline completa su un file immagine locale.
    @param image_path Path immagine (jpg/png/...).
    @param settings Impostazioni (già sovrascritte dalle opzioni CLI).
    @return ExtractionResult.

    @throws FileNotFoundError Se l'immagine non esiste.
    @throws PipelineError Per i fallimenti tipizzati della pipeline.
    """
    data = Path(image_path).read_bytes()
    orchestrator = build_orchestrator(settings, auth=AllowAllVerifier())
    return orchestrator.run(None, base64.b64encode(data).decode("ascii"))


def _cmd_fuel_types(args: argparse.Namespace) -> int:
    conn = connect(args.db)
    try:
        if args.action == "list":
            for entry in list_fuel_types(conn, only_active=not args.all):
                state = "attivo" if entry.attivo else "disattivo"
                print(f"{entry.id}\t{entry.nome}\t{state}\t{entry.descrizione or ''}")
            return 0
        if args.action == "add":
            fid = add_fuel_type(conn, args.name, args.description)
            print(json.dumps({"id": fid, "nome": args.name}, ensure_ascii=False))
            return 0
        if not set_fuel_type_active(conn, args.name, args.action == "enable"):
            print(f"Tipo carburante non trovato: {args.name}", file=sys.stderr)
            return 1
        return 0
    finally:
        conn.close()


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("rifornimenti.api.main:app", host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    @brief Entry point CLI.
    @return Exit code (0 ok, 1 errore).
    """
    settings = get_settings()

    p = argparse.ArgumentParser(prog="rifornimenti")
    p.add_argument("--db", default=settings.db_path, help="Path del catalogo SQLite")
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="cmd", required=True)

    ext = sub.add_parser("extract", help="Esegue OCR+estrazione+validazione e stampa il JSON")
    ext.add_argument("--image", required=True)
    ext.add_argument("--lang", default=settings.ocr_lang, help="Lingua Tesseract (default: ita)")
    ext.add_argument("--psm", type=int, default=settings.ocr_psm, help="Tesseract PSM (default: 6)")
    ext.add_argument("--no-llm", action="store_true", help="Non usa il modello generativo (solo euristiche)")
    ext.add_argument(
        "--send-image",
        action="store_true",
        help="Allega l'immagine anche alla richiesta al modello",
    )

    ft = sub.add_parser("fuel-types", help="Gestione catalogo tipi carburante")
    ft_sub = ft.add_subparsers(dest="action", required=True)
    ft_list = ft_sub.add_parser("list", help="Elenca i tipi carburante")
    ft_list.add_argument("--all", action="store_true", help="Include i tipi disattivati")
    ft_add = ft_sub.add_parser("add", help="Aggiunge o riattiva un tipo carburante")
    ft_add.add_argument("name")
    ft_add.add_argument("--description", default=None)
    for action in ("enable", "disable"):
        ft_toggle = ft_sub.add_parser(action, help=f"{action} di un tipo carburante")
        ft_toggle.add_argument("name")

    srv = sub.add_parser("serve", help="Avvia l'API HTTP (POST /ocr-receipt, GET /health)")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    args = p.parse_args(argv)
    configure_logging(args.log_level)

    if args.cmd == "fuel-types":
        return _cmd_fuel_types(args)
    if args.cmd == "serve":
        return _cmd_serve(args)

    overrides = {
        "db_path": args.db,
        "ocr_lang": args.lang,
        "ocr_psm": args.psm,
        "send_image_to_model": args.send_image or settings.send_image_to_model,
    }
    if args.no_llm:
        overrides["gemini_api_key"] = None

    try:
        result = run_extract(args.image, settings.model_copy(update=overrides))
    except PipelineError as e:
        print(json.dumps({"error": e.message}, ensure_ascii=False), file=sys.stderr)
        return 1

    print(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
