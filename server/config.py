from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = "config/params.yaml"

DEFAULTS: Dict = {
    "server": {"host": "0.0.0.0", "port": 3000, "base_url": "http://localhost:3000/iiif"},
    "sources": {
        "local": {"test": "data/images"},
        "proxy": {"proxy": {"cache_dir": "data/proxy_cache", "connect_timeout_s": 2.0, "read_timeout_s": 1.0}},
    },
    "limits": {"max_width": 10_000, "max_height": 10_000, "max_area": 50_000_000},
    "logging": {"level": "INFO"},
}


def load_config(path: Optional[str] = None) -> Dict:
    """
    Read YAML config; sections missing from the file fall back to DEFAULTS.
    Path precedence: explicit arg, env IIIF_CONFIG, config/params.yaml.
    """
    path = path or os.environ.get("IIIF_CONFIG") or DEFAULT_CONFIG_PATH
    if not Path(path).exists():
        return {k: dict(v) for k, v in DEFAULTS.items()}
    with open(path, "r") as f:
        loaded = yaml.safe_load(f) or {}
    return {k: loaded.get(k, dict(v)) for k, v in DEFAULTS.items()}
