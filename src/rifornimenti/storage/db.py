"""
@file db.py
@brief Apertura del database SQLite del catalogo carburanti.
@ingroup storage_module
"""

from __future__ import annotations
import logging
import sqlite3
from pathlib import Path

from .repository import init_schema

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


def connect(db_path: str) -> sqlite3.Connection:
    """
    @brief Apre il catalogo e garantisce tabella e tipi carburante di default.
    @param db_path File SQLite, oppure ":memory:" per un catalogo volatile (test, CLI usa e getta).
    @return Connessione con righe accessibili per nome di colonna.
    """
    if db_path != IN_MEMORY:
        parent = Path(db_path).parent
        if not parent.exists():
            logger.info("Creo la directory del catalogo: %s", parent)
            parent.mkdir(parents=True, exist_ok=True)
    catalog = sqlite3.connect(db_path)
    catalog.row_factory = sqlite3.Row
    init_schema(catalog)
    return catalog
