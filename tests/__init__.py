"""
IIIF Image Server Test Suite

Structure:
- unit/: parser, transform, codecs, sources, registry, orchestration
- integration/: HTTP routes through the FastAPI app
- conftest.py: synthetic image fixtures
"""
