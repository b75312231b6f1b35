import json

import cv2
import numpy as np

from rifornimenti.cli import main

from conftest import SAMPLE_RECEIPT


def test_fuel_types_commands(tmp_path, capsys):
    db = str(tmp_path / "cat.sqlite")

    assert main(["--db", db, "fuel-types", "add", "HVO"]) == 0
    assert json.loads(capsys.readouterr().out)["nome"] == "HVO"

    assert main(["--db", db, "fuel-types", "disable", "GPL"]) == 0
    assert main(["--db", db, "fuel-types", "list"]) == 0
    names = [line.split("\t")[1] for line in capsys.readouterr().out.splitlines()]
    assert "HVO" in names
    assert "GPL" not in names

    assert main(["--db", db, "fuel-types", "enable", "Idrogeno"]) == 1


def test_extract_heuristic_only(tmp_path, capsys, monkeypatch):
    img = np.full((300, 200, 3), 255, dtype=np.uint8)
    image_path = tmp_path / "scontrino.png"
    cv2.imwrite(str(image_path), img)
    monkeypatch.setattr(
        "rifornimenti.ocr.engine.pytesseract.image_to_string",
        lambda image, lang=None, config=None: SAMPLE_RECEIPT,
    )

    code = main(["--db", str(tmp_path / "cat.sqlite"), "extract", "--image", str(image_path), "--no-llm"])
    assert code == 0
    result = json.loads(capsys.readouterr().out)
    assert result["fields"]["targa"] == "AB123CD"
    assert result["fields"]["tipo_carburante"] == "Diesel"
    assert "Diesel" in result["available_fuel_types"]


def test_serve_runs_uvicorn(monkeypatch):
    seen = {}
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: seen.update(app=app, **kwargs))

    assert main(["serve", "--port", "9001"]) == 0
    assert seen["app"] == "rifornimenti.api.main:app"
    assert seen["port"] == 9001
