from __future__ import annotations

import io

import imagehash
from PIL import Image


def probe_image(image_bytes: bytes) -> dict:
    """Decode once and return dimensions, mime type and a 64-bit perceptual hash."""
    with Image.open(io.BytesIO(image_bytes)) as img:
        fmt = (img.format or "").upper()
        width, height = img.size
        ph = imagehash.phash(img.convert("RGB"), hash_size=8)
    return {
        "width": int(width),
        "height": int(height),
        "mime_type": Image.MIME.get(fmt) or "application/octet-stream",
        "phash": str(ph),
    }


def hamming_distance_hex(a: str, b: str) -> int:
    return int((int(a, 16) ^ int(b, 16)).bit_count())


def find_near_duplicates(hashes: list[tuple[int, str | None]], *, max_distance: int = 5) -> dict[int, int]:
    """
    Map image id -> id of an earlier image with a perceptual hash within max_distance.
    Input order decides which image counts as the original.
    """
    seen: list[tuple[int, str]] = []
    out: dict[int, int] = {}
    for image_id, ph in hashes:
        if not ph:
            continue
        for prior_id, prior_hash in seen:
            if hamming_distance_hex(ph, prior_hash) <= max_distance:
                out[int(image_id)] = int(prior_id)
                break
        else:
            seen.append((int(image_id), ph))
    return out
