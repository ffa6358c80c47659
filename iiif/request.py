"""
Parser for the IIIF image request path:

    identifier/region/size/rotation/quality.format

Every production must consume its whole segment; a partial match is a
syntax error reported with the 0-based offset into the parsed text and the
name of the production expected there. Alternatives are tried in a fixed
order and there is no backtracking across `/`.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Pattern, Union

import numpy as np

from common.errors import IIIFSyntaxError
from iiif.formats import ImageFormat, from_extension


# -----------------------------
# Request model
# -----------------------------

def _fmt_float(v: float) -> str:
    # positional notation only: the grammar has no exponent form
    return np.format_float_positional(float(v), trim="-")


@dataclass(frozen=True)
class RegionFull:
    def to_text(self) -> str:
        return "full"


@dataclass(frozen=True)
class RegionSquare:
    def to_text(self) -> str:
        return "square"


@dataclass(frozen=True)
class RegionAbsolute:
    x: int
    y: int
    w: int
    h: int

    def __post_init__(self) -> None:
        if self.x < 0 or self.y < 0:
            raise ValueError("x/y must be >= 0")
        if self.w <= 0 or self.h <= 0:
            raise ValueError("w/h must be > 0")

    def to_text(self) -> str:
        return f"{self.x},{self.y},{self.w},{self.h}"


@dataclass(frozen=True)
class RegionPercent:
    x: float
    y: float
    w: float
    h: float

    def to_text(self) -> str:
        return "pct:" + ",".join(_fmt_float(v) for v in (self.x, self.y, self.w, self.h))


Region = Union[RegionFull, RegionSquare, RegionAbsolute, RegionPercent]


@dataclass(frozen=True)
class SizeMax:
    def to_text(self) -> str:
        return "max"


@dataclass(frozen=True)
class SizeWidth:
    w: int

    def to_text(self) -> str:
        return f"{self.w},"


@dataclass(frozen=True)
class SizeHeight:
    h: int

    def to_text(self) -> str:
        return f",{self.h}"


@dataclass(frozen=True)
class SizePercent:
    pct: float

    def to_text(self) -> str:
        return f"pct:{_fmt_float(self.pct)}"


@dataclass(frozen=True)
class SizeWidthHeight:
    w: int
    h: int

    def to_text(self) -> str:
        return f"{self.w},{self.h}"


SizeKind = Union[SizeMax, SizeWidth, SizeHeight, SizePercent, SizeWidthHeight]


@dataclass(frozen=True)
class Size:
    kind: SizeKind = SizeMax()
    allow_upscale: bool = False
    maintain_ratio: bool = False

    def to_text(self) -> str:
        return ("^" if self.allow_upscale else "") + ("!" if self.maintain_ratio else "") + self.kind.to_text()


@dataclass(frozen=True)
class Rotation:
    degrees: int = 0
    mirror: bool = False

    def __post_init__(self) -> None:
        if self.degrees not in (0, 90, 180, 270):
            raise ValueError(f"unsupported rotation: {self.degrees}")

    def to_text(self) -> str:
        return ("!" if self.mirror else "") + str(self.degrees)


class Quality(str, Enum):
    COLOR = "color"
    GRAY = "gray"
    BITONAL = "bitonal"
    DEFAULT = "default"


@dataclass(frozen=True)
class ImageRequest:
    identifier: str
    region: Region
    size: Size
    rotation: Rotation
    quality: Quality
    format: ImageFormat

    def to_path(self) -> str:
        return "/".join([
            self.identifier,
            self.region.to_text(),
            self.size.to_text(),
            self.rotation.to_text(),
            f"{self.quality.value}.{self.format.ext}",
        ])


# -----------------------------
# Scanner
# -----------------------------

_UINT = re.compile(r"[0-9]+")
# decimal form first so "1.5" is not cut at "1"
_FLOAT = re.compile(r"[0-9]*\.[0-9]+|[0-9]+")
_DEGREES = re.compile(r"360|270|180|90|0")
_ALNUM = re.compile(r"[A-Za-z0-9]+")


class _Cursor:
    def __init__(self, text: str, pos: int = 0):
        self.text = text
        self.pos = pos

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self, literal: str) -> bool:
        return self.text.startswith(literal, self.pos)

    def take(self, literal: str) -> bool:
        if self.peek(literal):
            self.pos += len(literal)
            return True
        return False

    def expect(self, literal: str, production: Optional[str] = None) -> None:
        if not self.take(literal):
            raise self.fail(production or repr(literal))

    def match(self, pattern: Pattern[str]) -> Optional[str]:
        m = pattern.match(self.text, self.pos)
        if m is None:
            return None
        self.pos = m.end()
        return m.group(0)

    def expect_end(self, production: str = "end of input") -> None:
        if not self.at_end():
            raise self.fail(production)

    def fail(self, expected: str) -> IIIFSyntaxError:
        return IIIFSyntaxError(self.pos, expected, self.text)


def _uint(cur: _Cursor) -> int:
    tok = cur.match(_UINT)
    if tok is None:
        raise cur.fail("unsigned integer")
    return int(tok)


def _puint(cur: _Cursor) -> int:
    start = cur.pos
    tok = cur.match(_UINT)
    if tok is None or int(tok) == 0:
        cur.pos = start
        raise cur.fail("positive integer")
    return int(tok)


def _float(cur: _Cursor) -> float:
    start = cur.pos
    tok = cur.match(_FLOAT)
    if tok is None or not math.isfinite(float(tok)):
        cur.pos = start
        raise cur.fail("decimal number")
    return float(tok)


# -----------------------------
# Productions
# -----------------------------

def _identifier(cur: _Cursor) -> str:
    end = cur.text.find("/", cur.pos)
    if end <= cur.pos:
        raise cur.fail("identifier")
    ident = cur.text[cur.pos:end]
    cur.pos = end
    return ident


def _region(cur: _Cursor) -> Region:
    if cur.take("full"):
        return RegionFull()
    if cur.take("square"):
        return RegionSquare()
    if cur.take("pct:"):
        x = _float(cur)
        cur.expect(",")
        y = _float(cur)
        cur.expect(",")
        w = _float(cur)
        cur.expect(",")
        h = _float(cur)
        return RegionPercent(x, y, w, h)
    if not _UINT.match(cur.text, cur.pos):
        raise cur.fail("region")
    x = _uint(cur)
    cur.expect(",")
    y = _uint(cur)
    cur.expect(",")
    w = _puint(cur)
    cur.expect(",")
    h = _puint(cur)
    return RegionAbsolute(x, y, w, h)


def _size(cur: _Cursor) -> Size:
    # "^" and "!" are each optional and may come in either order
    allow_upscale = maintain_ratio = False
    if cur.take("^"):
        allow_upscale = True
        maintain_ratio = cur.take("!")
    elif cur.take("!"):
        maintain_ratio = True
        allow_upscale = cur.take("^")

    kind: SizeKind
    if cur.take("max"):
        kind = SizeMax()
    elif cur.take("pct:"):
        kind = SizePercent(_float(cur))
    elif cur.take(","):
        kind = SizeHeight(_puint(cur))
    elif _UINT.match(cur.text, cur.pos):
        w = _puint(cur)
        cur.expect(",")
        if _UINT.match(cur.text, cur.pos):
            kind = SizeWidthHeight(w, _puint(cur))
        else:
            kind = SizeWidth(w)
    else:
        raise cur.fail("size")
    return Size(kind=kind, allow_upscale=allow_upscale, maintain_ratio=maintain_ratio)


def _rotation(cur: _Cursor) -> Rotation:
    mirror = cur.take("!")
    tok = cur.match(_DEGREES)
    if tok is None:
        raise cur.fail("rotation (0|90|180|270|360)")
    return Rotation(degrees=int(tok) % 360, mirror=mirror)


def _quality(cur: _Cursor) -> Quality:
    for q in Quality:
        if cur.take(q.value):
            return q
    raise cur.fail("quality (color|gray|bitonal|default)")


def _format(cur: _Cursor) -> ImageFormat:
    start = cur.pos
    tok = cur.match(_ALNUM)
    fmt = from_extension(tok) if tok else None
    if fmt is None:
        cur.pos = start
        raise cur.fail("supported format")
    return fmt


# -----------------------------
# Public API
# -----------------------------

def parse_image_request(text: str) -> ImageRequest:
    """
    Parse `identifier/region/size/rotation/quality.format`.

    Raises:
        IIIFSyntaxError: on the first production that does not match.
    """
    cur = _Cursor(text)
    identifier = _identifier(cur)
    cur.expect("/")
    region = _region(cur)
    cur.expect("/")
    size = _size(cur)
    cur.expect("/")
    rotation = _rotation(cur)
    cur.expect("/")
    quality = _quality(cur)
    cur.expect(".")
    fmt = _format(cur)
    cur.expect_end()
    return ImageRequest(
        identifier=identifier,
        region=region,
        size=size,
        rotation=rotation,
        quality=quality,
        format=fmt,
    )


def _all_consuming(production, text: str):
    cur = _Cursor(text)
    value = production(cur)
    cur.expect_end()
    return value


def parse_region(text: str) -> Region:
    return _all_consuming(_region, text)


def parse_size(text: str) -> Size:
    return _all_consuming(_size, text)


def parse_rotation(text: str) -> Rotation:
    return _all_consuming(_rotation, text)


def parse_quality(text: str) -> Quality:
    return _all_consuming(_quality, text)


def parse_format(text: str) -> ImageFormat:
    return _all_consuming(_format, text)
