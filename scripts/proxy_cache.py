#!/usr/bin/env python3
"""
Operator helpers for proxy sources.

  encode  print the identifier to use in /iiif/{prefix}/{identifier}/... for a URI
  decode  print the URI behind an identifier
  warm    fetch URIs through a proxy source so their bytes land in the cache
  stats   count cache shards and entries on disk

Examples:
  python scripts/proxy_cache.py encode https://example.org/scan.png
  python scripts/proxy_cache.py warm --prefix proxy https://example.org/a.png https://example.org/b.jpg
  python scripts/proxy_cache.py stats --cache-dir data/proxy_cache
"""
from __future__ import annotations

import argparse
import os
import sys
from typing import List

# Add the project root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.errors import ImageServerError
from common.logging_setup import setup_logging
from server.config import load_config
from sources.cache import leaf_dirs
from sources.proxy import ProxySource, decode_identifier, encode_identifier
from sources.registry import SourceRegistry


def _proxy_from_config(config_path: str, prefix: str) -> ProxySource:
    P = load_config(config_path)
    registry = SourceRegistry.from_config(P.get("sources") or {})
    try:
        src = registry.get(prefix)
    except ImageServerError:
        src = None
    if not isinstance(src, ProxySource):
        registry.close()
        raise SystemExit(f"no proxy prefix {prefix!r} in {config_path}")
    return src


def cmd_warm(args: argparse.Namespace) -> int:
    src = _proxy_from_config(args.config, args.prefix)
    failed = 0
    try:
        for uri in args.uris:
            ident = encode_identifier(uri)
            try:
                image = src.get_image(args.prefix, ident)
            except ImageServerError as e:
                failed += 1
                print(f"[fail] {uri}: {e.kind}: {e}")
                continue
            entry = src.lookup(uri)
            print(f"[ok] {uri} -> {entry.digest if entry else '?'} ({image.width}x{image.height})")
    finally:
        src.close()
    return 1 if failed else 0


def cmd_stats(args: argparse.Namespace) -> int:
    shards = list(leaf_dirs(args.cache_dir))
    entries = sum(1 for d in shards for f in d.iterdir() if f.is_file() and not f.name.startswith(".tmp-"))
    print(f"shards: {len(shards)}")
    print(f"entries: {entries}")
    return 0


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Proxy source cache helpers")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("encode", help="URI -> identifier")
    p.add_argument("uri")

    p = sub.add_parser("decode", help="identifier -> URI")
    p.add_argument("identifier")

    p = sub.add_parser("warm", help="fetch URIs into the cache")
    p.add_argument("uris", nargs="+")
    p.add_argument("--prefix", default="proxy")
    p.add_argument("--config", default="config/params.yaml")

    p = sub.add_parser("stats", help="count cache shards/entries")
    p.add_argument("--cache-dir", default="data/proxy_cache")

    args = ap.parse_args(argv)
    setup_logging("WARNING")

    if args.cmd == "encode":
        print(encode_identifier(args.uri))
        return 0
    if args.cmd == "decode":
        try:
            print(decode_identifier(args.identifier))
        except ImageServerError as e:
            print(f"error: {e}", file=sys.stderr)
            return 2
        return 0
    if args.cmd == "warm":
        return cmd_warm(args)
    return cmd_stats(args)


if __name__ == "__main__":
    sys.exit(main())
