"""
Typed failures raised by the parser, the sources, the transform pipeline and
the codecs. Each carries a short machine-readable `kind` and the HTTP status
the server maps it to; nothing in this package retries on any of them.
"""

from __future__ import annotations

from typing import Optional


class ImageServerError(Exception):
    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str = "", *, detail: Optional[dict] = None):
        super().__init__(message or self.kind)
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": str(self)}


class IIIFSyntaxError(ImageServerError, ValueError):
    """Malformed request text. `position` is a 0-based offset into the parsed text."""
    kind = "syntax_error"
    status_code = 400

    def __init__(self, position: int, expected: str, text: str = ""):
        self.position = int(position)
        self.expected = expected
        self.text = text
        found = text[position:position + 12] if text else ""
        super().__init__(f"expected {expected} at position {position} (found {found!r})")

    def to_dict(self) -> dict:
        d = super().to_dict()
        d.update({"position": self.position, "expected": self.expected})
        return d


class BadInput(ImageServerError):
    """An identifier could not be decoded the way its source expects."""
    kind = "bad_input"
    status_code = 400


class NotFound(ImageServerError):
    kind = "not_found"
    status_code = 404


class UpstreamTimeout(NotFound):
    """Outbound fetch exceeded its connect/read timeout."""
    kind = "upstream_timeout"
    status_code = 504


class BadRequest(ImageServerError):
    """The request parsed but cannot be applied to this image."""
    kind = "bad_request"
    status_code = 400


class UpscaleRejected(BadRequest):
    kind = "upscale_rejected"


class DecodeError(ImageServerError):
    kind = "decode_error"
    status_code = 500


class EncodeError(ImageServerError):
    kind = "encode_error"
    status_code = 500
