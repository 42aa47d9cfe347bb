"""Encoding and decoding of captured frames."""
from __future__ import annotations

from pathlib import Path
from typing import Union

import cv2
import numpy as np
from loguru import logger

from ..errors import FrameDecodeFailed

FrameSource = Union[bytes, bytearray, memoryview, np.ndarray]


def _to_bgr(pixels: np.ndarray) -> np.ndarray:
    if pixels.ndim == 2:
        return pixels
    if pixels.ndim == 3 and pixels.shape[2] == 3:
        return cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR)
    if pixels.ndim == 3 and pixels.shape[2] == 4:
        return cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGR)
    raise FrameDecodeFailed(f"Unsupported pixel buffer shape {pixels.shape}")


def _to_rgb(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def encode_frame(pixels: np.ndarray, quality: int = 50) -> bytes:
    """Compress an RGB (or grayscale) uint8 pixel buffer to JPEG bytes.

    Raises:
        FrameDecodeFailed: If the buffer is empty, has an unsupported layout or
            the encoder rejects it.
    """
    if not isinstance(pixels, np.ndarray) or pixels.size == 0:
        raise FrameDecodeFailed("Pixel buffer is empty or not an array.")
    if pixels.dtype != np.uint8:
        raise FrameDecodeFailed(f"Pixel buffer must be uint8, got {pixels.dtype}.")
    bgr = _to_bgr(pixels)
    try:
        ok, encoded = cv2.imencode(".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    except cv2.error as exc:
        raise FrameDecodeFailed(f"JPEG encoding failed: {exc}") from exc
    if not ok:
        raise FrameDecodeFailed("JPEG encoder rejected the pixel buffer.")
    return encoded.tobytes()


def decode_frame(source: FrameSource) -> np.ndarray:
    """Decode stored frame data (or pass through an array) as an RGB uint8 image."""
    if isinstance(source, np.ndarray):
        if source.size == 0 or source.dtype != np.uint8 or source.ndim not in (2, 3):
            raise FrameDecodeFailed("Frame array must be a non-empty uint8 image.")
        if source.ndim == 2:
            return cv2.cvtColor(source, cv2.COLOR_GRAY2RGB)
        if source.shape[2] == 4:
            return cv2.cvtColor(source, cv2.COLOR_RGBA2RGB)
        if source.shape[2] != 3:
            raise FrameDecodeFailed(f"Unsupported frame shape {source.shape}")
        return np.ascontiguousarray(source)

    buffer = np.frombuffer(bytes(source), dtype=np.uint8)
    if buffer.size == 0:
        raise FrameDecodeFailed("Frame data is empty.")
    try:
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as exc:
        raise FrameDecodeFailed(f"Frame data could not be decoded: {exc}") from exc
    if image is None:
        raise FrameDecodeFailed("Frame data could not be decoded.")
    return _to_rgb(image)


def load_frame_file(path: Path) -> bytes:
    """Read an image file as stored frame data, validating that it decodes."""
    if not path.is_file():
        raise FileNotFoundError(f"Unable to read photo: {path}")
    data = path.read_bytes()
    image = decode_frame(data)
    logger.debug("Loaded photo {} with shape {}", path, image.shape)
    return data


def save_panorama(path: Path, image: np.ndarray, quality: int = 90) -> None:
    """Write an RGB panorama to disk; the format follows the file suffix."""
    params = []
    if path.suffix.lower() in {".jpg", ".jpeg"}:
        params = [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)]
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), _to_bgr(image), params):
        raise OSError(f"Failed to write panorama to {path}")
    logger.info("Saved panorama {} ({}x{})", path, image.shape[1], image.shape[0])
