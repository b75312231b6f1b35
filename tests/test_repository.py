from rifornimenti.domain.fuel_types import DEFAULT_FUEL_TYPES
from rifornimenti.storage.db import connect
from rifornimenti.storage.repository import (
    SqliteFuelTypeCatalog,
    add_fuel_type,
    list_active_fuel_types,
    list_fuel_types,
    set_fuel_type_active,
)


def test_schema_is_seeded_with_default_fuel_types():
    conn = connect(":memory:")
    assert [e.nome for e in list_active_fuel_types(conn)] == DEFAULT_FUEL_TYPES


def test_add_fuel_type_is_case_insensitive_upsert():
    conn = connect(":memory:")
    fid = add_fuel_type(conn, "HVO", "Olio vegetale idrotrattato")
    assert fid > 0
    assert add_fuel_type(conn, "hvo") == fid

    entry = [e for e in list_fuel_types(conn) if e.id == fid][0]
    assert entry.nome == "HVO"
    assert entry.descrizione == "Olio vegetale idrotrattato"


def test_disable_and_reactivate():
    conn = connect(":memory:")
    assert set_fuel_type_active(conn, "GPL", False)
    assert "GPL" not in [e.nome for e in list_active_fuel_types(conn)]
    assert "GPL" in [e.nome for e in list_fuel_types(conn)]

    add_fuel_type(conn, "GPL")
    assert "GPL" in [e.nome for e in list_active_fuel_types(conn)]
    assert not set_fuel_type_active(conn, "Idrogeno", True)


def test_sqlite_catalog_reads_active_entries(tmp_path):
    db = tmp_path / "nested" / "catalogo.sqlite"
    conn = connect(str(db))
    set_fuel_type_active(conn, "Elettrico", False)
    conn.close()

    entries = SqliteFuelTypeCatalog(str(db)).list_active_fuel_types()
    assert db.exists()
    assert all(e.attivo for e in entries)
    assert "Elettrico" not in [e.nome for e in entries]
    assert len(entries) == len(DEFAULT_FUEL_TYPES) - 1
