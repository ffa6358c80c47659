"""
IIIF Image API request layer

- request: parser for identifier/region/size/rotation/quality.format
- formats: the supported-codec registry (extension / MIME lookups)
- info: the info.json descriptor
"""
from .request import ImageRequest, parse_image_request

__all__ = ["ImageRequest", "parse_image_request"]
