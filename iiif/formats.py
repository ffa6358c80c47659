from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class ImageFormat:
    """One entry of the supported-codec registry."""
    ext: str                      # canonical extension, used in request text
    codec: str                    # Pillow format name
    mime: str
    extensions: Tuple[str, ...]
    modes: Tuple[str, ...]        # pixel modes the codec stores natively

    def __str__(self) -> str:
        return self.ext


JPG = ImageFormat("jpg", "JPEG", "image/jpeg", ("jpg", "jpeg", "jfif"), ("L", "RGB"))
PNG = ImageFormat("png", "PNG", "image/png", ("png",), ("L", "LA", "RGB", "RGBA"))
TIF = ImageFormat("tif", "TIFF", "image/tiff", ("tif", "tiff"), ("L", "LA", "RGB", "RGBA"))
GIF = ImageFormat("gif", "GIF", "image/gif", ("gif",), ("L", "RGB", "RGBA"))
WEBP = ImageFormat("webp", "WEBP", "image/webp", ("webp",), ("RGB", "RGBA"))
BMP = ImageFormat("bmp", "BMP", "image/bmp", ("bmp",), ("L", "RGB", "RGBA"))
ICO = ImageFormat("ico", "ICO", "image/x-icon", ("ico",), ("RGB", "RGBA"))
TGA = ImageFormat("tga", "TGA", "image/x-tga", ("tga",), ("L", "LA", "RGB", "RGBA"))
PNM = ImageFormat("pnm", "PPM", "image/x-portable-anymap", ("pnm", "pbm", "pgm", "ppm"), ("L", "RGB"))

FORMATS: Tuple[ImageFormat, ...] = (JPG, PNG, TIF, GIF, WEBP, BMP, ICO, TGA, PNM)

# Container used for Local Source files and proxy cache entries
ON_DISK_FORMAT = TIF

FORMATS_BY_EXTENSION: Dict[str, ImageFormat] = {e: f for f in FORMATS for e in f.extensions}

FORMATS_BY_MEDIA_TYPE: Dict[str, ImageFormat] = {f.mime: f for f in FORMATS}
FORMATS_BY_MEDIA_TYPE.update({
    "image/jpg": JPG,
    "image/pjpeg": JPG,
    "image/x-tiff": TIF,
    "image/tif": TIF,
    "image/x-ms-bmp": BMP,
    "image/vnd.microsoft.icon": ICO,
    "image/x-targa": TGA,
    "image/x-portable-bitmap": PNM,
    "image/x-portable-graymap": PNM,
    "image/x-portable-pixmap": PNM,
})


def from_extension(ext: str) -> Optional[ImageFormat]:
    return FORMATS_BY_EXTENSION.get(ext.lower().lstrip("."))


def from_mime_type(mime: str) -> Optional[ImageFormat]:
    """Resolve a Content-Type value; parameters such as `; charset=` are ignored."""
    media_type = mime.split(";", 1)[0].strip().lower()
    return FORMATS_BY_MEDIA_TYPE.get(media_type)
