"""
@file repository.py
@brief Layer repository per il catalogo tipi carburante su SQLite.
@ingroup storage_module

@details
Isola SQL e schema dal resto dell'applicazione. La pipeline legge solo le
voci attive; scrittura e disattivazione servono alla CLI di amministrazione.
"""

from __future__ import annotations
import sqlite3
from typing import Optional, Sequence

from rifornimenti.domain.fuel_types import DEFAULT_FUEL_TYPES
from rifornimenti.domain.models import FuelTypeEntry

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tipi_carburante (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  nome TEXT NOT NULL UNIQUE COLLATE NOCASE,
  descrizione TEXT,
  attivo INTEGER NOT NULL DEFAULT 1
);
"""


def init_schema(conn: sqlite3.Connection, seed: Sequence[str] = DEFAULT_FUEL_TYPES) -> None:
    """
    @brief Applica lo schema SQL e inserisce i tipi di default (idempotente).
    @param conn Connessione SQLite.
    @param seed Nomi da inserire se non presenti.
    """
    conn.executescript(SCHEMA_SQL)
    conn.executemany(
        "INSERT OR IGNORE INTO tipi_carburante(nome) VALUES (?)",
        [(name,) for name in seed],
    )
    conn.commit()


def _row_to_entry(row: sqlite3.Row) -> FuelTypeEntry:
    return FuelTypeEntry(
        id=int(row["id"]),
        nome=row["nome"],
        descrizione=row["descrizione"],
        attivo=bool(row["attivo"]),
    )


def list_fuel_types(conn: sqlite3.Connection, *, only_active: bool = False) -> list[FuelTypeEntry]:
    """
    @brief Elenca le voci del catalogo ordinate per id.
    @param only_active Se True restituisce solo le voci attive.
    """
    sql = "SELECT id, nome, descrizione, attivo FROM tipi_carburante"
    if only_active:
        sql += " WHERE attivo = 1"
    sql += " ORDER BY id"
    return [_row_to_entry(r) for r in conn.execute(sql).fetchall()]


def list_active_fuel_types(conn: sqlite3.Connection) -> list[FuelTypeEntry]:
    """Voci attive del catalogo (unico accesso usato dalla pipeline)."""
    return list_fuel_types(conn, only_active=True)


def add_fuel_type(conn: sqlite3.Connection, nome: str, descrizione: Optional[str] = None) -> int:
    """
    @brief Inserisce (o riattiva) un tipo carburante.
    @return ID (PK) della voce.
    """
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO tipi_carburante(nome, descrizione, attivo) VALUES (?, ?, 1)
        ON CONFLICT(nome) DO UPDATE SET attivo = 1,
          descrizione = COALESCE(excluded.descrizione, tipi_carburante.descrizione)
        """,
        (nome.strip(), descrizione),
    )
    conn.commit()
    row = conn.execute("SELECT id FROM tipi_carburante WHERE nome = ?", (nome.strip(),)).fetchone()
    if row is None:
        raise RuntimeError(f"Tipo carburante non trovato dopo l'inserimento: {nome}")
    return int(row["id"])


def set_fuel_type_active(conn: sqlite3.Connection, nome: str, active: bool) -> bool:
    """
    @brief Attiva o disattiva un tipo carburante per nome.
    @return True se la voce esiste.
    """
    cur = conn.execute(
        "UPDATE tipi_carburante SET attivo = ? WHERE nome = ?",
        (1 if active else 0, nome.strip()),
    )
    conn.commit()
    return cur.rowcount > 0


class SqliteFuelTypeCatalog:
    """
    @brief Catalogo tipi carburante letto da SQLite ad ogni richiesta.
    @param db_path Path al file SQLite.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def list_active_fuel_types(self) -> list[FuelTypeEntry]:
        from .db import connect

        conn = connect(self.db_path)
        try:
            return list_active_fuel_types(conn)
        finally:
            conn.close()
