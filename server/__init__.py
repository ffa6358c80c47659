"""
Image server

- Serves /iiif/{prefix}/{identifier}/{region}/{size}/{rotation}/{quality}.{format}
- Serves /iiif/{prefix}/{identifier}/info.json (IIIF Image API 3.0 descriptor)
- /health, /stats

Run:
    uvicorn server.app:app --port 3000
"""
