"""
@file preprocess.py
@brief Decodifica e pre-processing di foto di scontrini carburante per l'OCR.
@ingroup ocr_module

@details
Gli scontrini delle colonnine self-service sono stretti, su carta termica
spesso sbiadita e fotografati con il telefono. Ogni step è una funzione
separata che ritorna l'immagine e il nome dello step (None se non applicato):
1. scala di grigi
2. orientamento verticale
3. compensazione ombre
4. ingrandimento degli scontrini piccoli
5. ritaglio sullo scontrino
6. smoothing, binarizzazione Otsu e closing dei caratteri
"""
from __future__ import annotations
from typing import Optional

import cv2
import numpy as np

_MAGIC_NUMBERS = [
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
]

StepResult = tuple[np.ndarray, Optional[str]]


def sniff_mime_type(data: bytes, default: str = "image/jpeg") -> str:
    """
    @brief Riconosce il tipo MIME dai primi byte dell'immagine.
    @param data Byte dell'immagine.
    @param default Tipo restituito se la firma non è riconosciuta.
    @return Tipo MIME (image/jpeg, image/png, image/webp, ...).
    """
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for magic, mime in _MAGIC_NUMBERS:
        if data.startswith(magic):
            return mime
    return default


def decode_image(data: bytes) -> np.ndarray:
    """
    @brief Decodifica byte di un'immagine in matrice BGR.
    @throws ValueError Se OpenCV non riesce a decodificare il contenuto.
    """
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_COLOR) if buf.size else None
    if img is None:
        raise ValueError("Immagine non leggibile")
    return img


def _ensure_portrait(gray: np.ndarray) -> StepResult:
    rows, cols = gray.shape[:2]
    if cols <= rows:
        return gray, None
    return cv2.rotate(gray, cv2.ROTATE_90_COUNTERCLOCKWISE), "rotate_landscape_to_portrait"


def _flatten_shadows(gray: np.ndarray, ksize: int) -> StepResult:
    """Divide per lo sfondo stimato con median blur (ombra della mano, pieghe)."""
    ksize = ksize if ksize % 2 else ksize + 1
    background = cv2.medianBlur(gray, ksize)
    return cv2.divide(gray, background, scale=255), f"normalize_illumination(ksize={ksize})"


def _upscale(gray: np.ndarray, min_long_edge: int) -> StepResult:
    rows, cols = gray.shape[:2]
    current = max(rows, cols)
    if current >= min_long_edge:
        return gray, None
    factor = min_long_edge / float(current)
    resized = cv2.resize(gray, (int(cols * factor), int(rows * factor)), interpolation=cv2.INTER_CUBIC)
    return resized, f"upscale_to_min_dim({min_long_edge})"


def _crop_receipt(gray: np.ndarray, margin: int) -> StepResult:
    """
    @brief Ritaglia il bounding box del contorno esterno più grande (la carta dello scontrino).
    @param gray Immagine in scala di grigi.
    @param margin Pixel lasciati attorno al bounding box.
    @return Immagine ritagliata, oppure l'originale se il contorno è troppo piccolo.
    """
    smoothed = cv2.GaussianBlur(gray, (5, 5), 0)
    _, mask = cv2.threshold(smoothed, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return gray, None

    rows, cols = gray.shape[:2]
    left, top, width, height = cv2.boundingRect(max(contours, key=cv2.contourArea))
    # contorno sotto il 20% di un lato: probabilmente un logo o una macchia
    if width < 0.2 * cols or height < 0.2 * rows:
        return gray, None

    top, bottom = max(top - margin, 0), min(top + height + margin, rows)
    left, right = max(left - margin, 0), min(left + width + margin, cols)
    return gray[top:bottom, left:right], f"crop_by_largest_contour(margin={margin})"


def _binarize(gray: np.ndarray) -> tuple[np.ndarray, list[str]]:
    denoised = cv2.bilateralFilter(gray, d=7, sigmaColor=50, sigmaSpace=50)
    _, binary = cv2.threshold(
        cv2.GaussianBlur(denoised, (5, 5), 0), 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU
    )
    # la stampa termica sbiadita spezza i tratti: closing 2x2
    closed = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, np.ones((2, 2), np.uint8), iterations=1)
    return closed, ["bilateral_filter", "otsu_threshold", "morph_close_2x2"]


def preprocess_for_ocr(
    image_bgr: np.ndarray,
    *,
    enable_crop: bool = True,
    crop_margin: int = 8,
    rotate_to_portrait: bool = True,
    flatten_shadows: bool = True,
    shadow_ksize: int = 51,
    min_long_edge: Optional[int] = 1800,
) -> tuple[np.ndarray, list[str]]:
    """
    @brief Prepara la foto di uno scontrino per Tesseract.
    @param image_bgr Immagine BGR (output di decode_image).
    @param enable_crop Se True ritaglia lo scontrino dallo sfondo.
    @param crop_margin Margine (px) attorno allo scontrino.
    @param rotate_to_portrait Se True ruota di 90° le foto orizzontali.
    @param flatten_shadows Se True compensa le ombre.
    @param shadow_ksize Kernel (dispari) per stimare lo sfondo.
    @param min_long_edge Lato lungo minimo (px) dopo l'ingrandimento; None per disattivare.
    @return (immagine binarizzata, step applicati in ordine).

    @throws ValueError Se l'immagine è vuota.
    """
    if image_bgr is None or image_bgr.size == 0:
        raise ValueError("Immagine vuota o non valida")

    gray = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2GRAY)
    steps = ["to_gray"]

    stages = []
    if rotate_to_portrait:
        stages.append(_ensure_portrait)
    if flatten_shadows:
        stages.append(lambda g: _flatten_shadows(g, shadow_ksize))
    if min_long_edge is not None:
        stages.append(lambda g: _upscale(g, min_long_edge))
    if enable_crop:
        stages.append(lambda g: _crop_receipt(g, crop_margin))

    for stage in stages:
        gray, applied = stage(gray)
        if applied:
            steps.append(applied)

    binary, final_steps = _binarize(gray)
    return binary, steps + final_steps
