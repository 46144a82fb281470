#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
bloaty CSV -> esbuild metafile converter.

Usage
-----
    bloaty --csv -d sections,symbols -n 0 target/release/app > app.csv
    bloaty-metafile --input app.csv --lock Cargo.lock --name app > meta.json

or straight from a pipe:

    bloaty --csv -d sections,symbols -n 0 app | bloaty-metafile > meta.json

Exit codes
----------
    0 - metafile written
    2 - bad input, bad arguments or an internal size mismatch
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from .config import Config, build_config, load_config
from .errors import BloatyMetafileError
from .metafile import METRICS, to_metafile, validate, write_metafile
from .packages import load_packages
from .records import read_records
from .symbols import resolve
from .tree import build_tree, limit_depth

logger = logging.getLogger("bloaty_metafile")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="bloaty-metafile",
        description="Convert bloaty CSV output (-d sections,symbols) into an esbuild metafile.",
    )
    ap.add_argument("--config", type=str, help="JSON config file (CLI flags override it)")
    ap.add_argument("--input", "-i", type=str, default=None, help="bloaty CSV file (default: stdin)")
    ap.add_argument("--output", "-o", type=str, default=None, help="Metafile path (default: stdout)")
    ap.add_argument("--name", type=str, default=None, help="Name of the output entry (default: bloaty)")
    ap.add_argument("--lock", type=str, default=None, help="Cargo.lock path (default: ./Cargo.lock if present)")
    ap.add_argument("--root", type=str, default=None, help="Root package name (default: inferred from the lock file)")
    ap.add_argument("--deep", type=int, default=None, help="Max tree depth, 0 = unlimited (default: 8)")
    ap.add_argument("--metric", choices=METRICS, default=None, help="Size column to report (default: filesize)")
    ap.add_argument("--sections", action="store_true", help="Insert the section name below each crate")
    ap.add_argument("--no-sections", action="store_true", help="Drop records that are not attributed to a crate")
    ap.add_argument("--workers", type=int, default=None, help="Parallel resolver threads (default: 1)")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return ap.parse_args(argv)


def run(config: Config) -> Dict[str, Any]:
    """Whole pipeline; returns a validated metafile, writes nothing."""
    source = config.input if config.input and str(config.input) != "-" else sys.stdin
    records = read_records(source)
    logger.info(f"Read {len(records)} records")

    crates = {resolve(r.section, r.symbol)[0] for r in records}
    packages = load_packages(config.lock, root=config.root, crates=crates)

    tree = build_tree(records, packages, workers=config.workers,
                      with_section=config.sections, no_sections=config.no_sections)
    root = limit_depth(tree.root, config.deep)

    if logger.isEnabledFor(logging.DEBUG):
        top = sorted(root.children.values(), key=lambda n: getattr(n.total, config.metric), reverse=True)
        for node in top[:10]:
            logger.debug(f"  {node.name:<40} : {getattr(node.total, config.metric)} bytes")

    metafile = to_metafile(root, config.name, config.metric)
    validate(root, metafile, config.metric)
    if packages.skipped:
        logger.warning(f"Skipped {packages.skipped} malformed lock file entries")
    return metafile


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    try:
        config = build_config(args, load_config(args.config))
        if config.verbose:
            logger.setLevel(logging.DEBUG)
        metafile = run(config)
        write_metafile(metafile, config.output)
    except BloatyMetafileError as e:
        logger.error(str(e))
        return 2
    except OSError as e:
        logger.error(f"I/O error: {e}")
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
