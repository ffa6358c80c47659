"""
Request orchestration: parse -> fetch -> transform -> encode.

Kept free of HTTP types so it can be driven directly (tests, scripts); the
FastAPI layer only maps the typed errors raised here to status codes.
"""

from __future__ import annotations

from dataclasses import dataclass

from common.logging_setup import get_logger
from common.utils import timer_ms
from iiif.info import ImageInfo
from iiif.request import ImageRequest, parse_image_request
from imaging.codecs import encode
from imaging.transform import SizeLimits, transform
from sources.registry import SourceRegistry


log = get_logger(__name__)


@dataclass(frozen=True)
class RenderedImage:
    content: bytes
    media_type: str
    request: ImageRequest


@timer_ms
def _render(registry: SourceRegistry, prefix: str, request: ImageRequest, limits: SizeLimits) -> bytes:
    image = registry.fetch(prefix, request.identifier)
    out = transform(image, request.region, request.size, request.rotation, limits)
    # quality is parsed and echoed but has no pixel effect
    return encode(out, request.format)


def render_image(
    registry: SourceRegistry,
    prefix: str,
    path: str,
    limits: SizeLimits = SizeLimits(),
) -> RenderedImage:
    """
    Serve `identifier/region/size/rotation/quality.format` under `prefix`.

    Raises:
        IIIFSyntaxError, BadInput, NotFound, BadRequest, DecodeError, EncodeError
    """
    request = parse_image_request(path)
    content, dt_ms = _render(registry, prefix, request, limits)
    log.info(
        "Rendered image",
        extra={"extra": {"prefix": prefix, "request": request.to_path(), "bytes": len(content), "latency_ms": int(dt_ms)}},
    )
    return RenderedImage(content=content, media_type=request.format.mime, request=request)


def describe_image(
    registry: SourceRegistry,
    prefix: str,
    identifier: str,
    base_url: str,
    limits: SizeLimits = SizeLimits(),
) -> ImageInfo:
    image = registry.fetch(prefix, identifier)
    return ImageInfo.for_image(base_url, prefix, identifier, image, limits)
