"""
esbuild metafile output.

    {
      "inputs":  {"<path>": {"bytes": N, "imports": [{"path": "<child path>"}]}},
      "outputs": {"<name>": {"bytes": TOTAL,
                             "inputs": {"<path>": {"bytesInOutput": N}},
                             "imports": [], "exports": []}}
    }

Every tree node becomes one input keyed by its `/`-joined path; its
children are its imports, which is what makes the analyzer render nesting.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import SerializationError
from .tree import TreeNode, find_violations

SEPARATOR = "/"
METRICS = ("filesize", "vmsize")


def path_key(path) -> str:
    # escape '%' before '/', or "a/b" and "a%2Fb" would share a key
    return SEPARATOR.join(part.replace("%", "%25").replace(SEPARATOR, "%2F") for part in path)


def to_metafile(root: TreeNode, name: str, metric: str = "filesize") -> Dict[str, Any]:
    if metric not in METRICS:
        raise ValueError(f"metric must be one of {METRICS}, got {metric!r}")

    inputs: Dict[str, Dict[str, Any]] = {}
    for path, node in root.walk():
        key = path_key(path)
        inputs[key] = {
            "bytes": getattr(node.own, metric),
            "imports": [{"path": path_key(path + (child,))} for child in sorted(node.children)],
        }

    output = {
        "bytes": getattr(root.total, metric),
        "inputs": {key: {"bytesInOutput": inp["bytes"]} for key, inp in inputs.items()},
        "imports": [],
        "exports": [],
    }
    return {"inputs": inputs, "outputs": {name: output}}


def validate(root: TreeNode, metafile: Dict[str, Any], metric: str = "filesize") -> None:
    """Raise SerializationError unless tree and document agree byte for byte."""
    bad = find_violations(root)
    if bad:
        raise SerializationError(f"size totals inconsistent at {len(bad)} node(s), first: {bad[0]}")

    inputs = metafile["inputs"]
    summed = sum(inp["bytes"] for inp in inputs.values())
    expected = getattr(root.total, metric)
    for out_name, output in metafile["outputs"].items():
        if output["bytes"] != expected:
            raise SerializationError(f"output {out_name!r} has {output['bytes']} bytes, tree has {expected}")
    if summed != expected:
        raise SerializationError(f"inputs sum to {summed} bytes, tree has {expected}")

    for key, inp in inputs.items():
        for imp in inp["imports"]:
            if imp["path"] not in inputs:
                raise SerializationError(f"{key} imports unknown path {imp['path']}")


def write_metafile(metafile: Dict[str, Any], out: Optional[Union[str, Path]] = None) -> None:
    payload = json.dumps(metafile, sort_keys=True)
    if out is None:
        sys.stdout.write(payload + "\n")
        sys.stdout.flush()
        return
    outp = Path(out)
    outp.parent.mkdir(parents=True, exist_ok=True)

    # atomic write: temp file + rename
    temp_file = outp.with_name(outp.name + ".tmp")
    try:
        temp_file.write_text(payload + "\n", encoding="utf-8")
        temp_file.replace(outp)
    except OSError:
        if temp_file.exists():
            temp_file.unlink()
        raise
