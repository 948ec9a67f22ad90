# shiftreport/image_manager.py
import io
import logging
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

LANCZOS = Image.Resampling.LANCZOS

MEDIA_TYPES = {
    'JPEG': 'image/jpeg',
    'PNG': 'image/png',
    'GIF': 'image/gif',
    'WEBP': 'image/webp',
}


def detect_media_type(b: bytes) -> Optional[str]:
    """Media type from the image header, or None when Pillow cannot read it."""
    if not b:
        return None
    try:
        with Image.open(io.BytesIO(b)) as img:
            return MEDIA_TYPES.get(img.format or '')
    except (UnidentifiedImageError, OSError):
        return None


def _flatten_alpha(img: Image.Image) -> Image.Image:
    has_alpha = img.mode in ('RGBA', 'LA') or (img.mode == 'P' and 'transparency' in img.info)
    if has_alpha:
        rgba = img.convert('RGBA')
        bg = Image.new('RGB', img.size, (255, 255, 255))
        bg.paste(rgba.convert('RGB'), mask=rgba.split()[-1])
        return bg
    if img.mode != 'RGB':
        return img.convert('RGB')
    return img


def compress_image_bytes(
    b: bytes,
    max_bytes: int = 3_500_000,
    max_side_px: int = 2400,
    initial_quality: int = 85
) -> bytes:
    """
    Re-encode an image as JPEG under max_bytes:
     - applies EXIF orientation
     - scales down so the longer side is at most max_side_px
     - lowers quality in steps, then shrinks dimensions by 10% per step
    """
    with Image.open(io.BytesIO(b)) as src:
        img = ImageOps.exif_transpose(src)
        w, h = img.size
        ratio = min(1.0, float(max_side_px) / max(1, w, h))
        if ratio < 1.0:
            img = img.resize((max(1, int(w * ratio)), max(1, int(h * ratio))), resample=LANCZOS)
        working = _flatten_alpha(img)

    out = io.BytesIO()
    quality = int(max(30, min(95, initial_quality)))
    data = b''
    for _ in range(6):
        out.seek(0)
        out.truncate(0)
        working.save(out, format='JPEG', quality=quality, optimize=True)
        data = out.getvalue()
        if len(data) <= max_bytes:
            return data
        quality = max(30, int(quality * 0.7))

    while len(data) > max_bytes:
        cw, ch = working.size
        if cw <= 100 or ch <= 100:
            break
        working = working.resize((max(1, int(cw * 0.9)), max(1, int(ch * 0.9))), resample=LANCZOS)
        out.seek(0)
        out.truncate(0)
        working.save(out, format='JPEG', quality=quality, optimize=True)
        data = out.getvalue()
    return data


def prepare_for_ocr(b: bytes, media_type: str, max_bytes: int, max_side_px: int) -> Tuple[bytes, str]:
    """Small images pass through untouched; large ones are re-encoded as JPEG."""
    if len(b) <= max_bytes:
        return b, media_type
    logger.info("Compressing %d byte image for OCR (limit %d)", len(b), max_bytes)
    return compress_image_bytes(b, max_bytes=max_bytes, max_side_px=max_side_px), 'image/jpeg'
