from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response

from common import __version__
from common.errors import ImageServerError
from common.logging_setup import get_logger, setup_logging
from iiif.info import INFO_MEDIA_TYPE
from imaging.transform import SizeLimits
from server.config import DEFAULTS, load_config
from server.orchestrator import describe_image, render_image
from sources.registry import SourceRegistry


log = get_logger(__name__)


def _error_response(e: ImageServerError) -> JSONResponse:
    if e.status_code >= 500:
        log.error("Request failed: %s", e, exc_info=e)
    else:
        log.info("Request rejected: %s", e, extra={"extra": {"kind": e.kind, "status": e.status_code}})
    return JSONResponse(e.to_dict(), status_code=e.status_code)


def create_app(config: Optional[Dict] = None, registry: Optional[SourceRegistry] = None) -> FastAPI:
    P = config if config is not None else load_config()
    setup_logging(P.get("logging", {}).get("level"))

    limits = SizeLimits(**{**DEFAULTS["limits"], **(P.get("limits") or {})})
    base_url = str(P.get("server", {}).get("base_url", DEFAULTS["server"]["base_url"]))
    if registry is None:
        registry = SourceRegistry.from_config(P.get("sources") or {})

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        log.info("Closing image sources")
        registry.close()

    app = FastAPI(title="IIIF Image Server", version=__version__, lifespan=lifespan)
    app.state.registry = registry
    app.state.limits = limits

    @app.get("/health")
    def health():
        return {"status": "ok", "prefixes": registry.prefixes()}

    @app.get("/stats")
    def stats():
        return {"sources": registry.stats()}

    @app.get("/iiif/{prefix}/{identifier}/info.json")
    def info(prefix: str, identifier: str):
        try:
            desc = describe_image(registry, prefix, identifier, base_url, limits)
        except ImageServerError as e:
            return _error_response(e)
        return JSONResponse(desc.to_dict(), media_type=INFO_MEDIA_TYPE)

    @app.get("/iiif/{prefix}/{identifier}/{region}/{size}/{rotation}/{quality_format}")
    def image(prefix: str, identifier: str, region: str, size: str, rotation: str, quality_format: str):
        """
        Return encoded image bytes with the MIME type of the requested format.
        Sources block on disk/network, so this is a plain def (thread pool).
        """
        path = "/".join([identifier, region, size, rotation, quality_format])
        try:
            out = render_image(registry, prefix, path, limits)
        except ImageServerError as e:
            return _error_response(e)
        return Response(content=out.content, media_type=out.media_type)

    return app


app = create_app()


# -------- local dev entrypoint --------
if __name__ == "__main__":
    P = load_config()
    # log_config=None keeps uvicorn on the JSON root handler
    uvicorn.run(app, host=P["server"].get("host", "0.0.0.0"), port=int(P["server"].get("port", 3000)), log_config=None)
