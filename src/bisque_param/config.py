#!/usr/bin/env python3
"""
bisque_param.config

Contains:
- USER_DEFAULTS: baseline defaults for CLI & drivers
- resolve_paths(args): expand user paths, normalize relative ones
- timestamped_run_root(): fallback output folder
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


# -------------------------------------------------------------
# Default user-configurable parameters (used by CLI & drivers)
# -------------------------------------------------------------
# Every key the CLI reads must exist here.
USER_DEFAULTS: Dict[str, Any] = {
    # Inputs
    "bulk": "",
    "bulk_gene_col": "",            # "" means auto-detect
    "bulk_metadata": "",            # per-sample table; holds the batch column
    "sample_col": "sample_id",
    "bulk_independent": "",
    "sc_h5ad": "",                  # file or folder of .h5ad
    "reference": "",                # genes x cell types; built from sc data if empty
    "cell_scale_factors": "",

    # Annotation keys
    "assay_name": "counts",
    "batch_variable": "batch.id",
    "cell_type_variable": "celltype",

    # Flags
    "use_overlap": False,
    "return_info": False,

    # Outputs
    "outdir": "",
}

PATH_KEYS = ["bulk", "bulk_metadata", "bulk_independent", "sc_h5ad", "reference",
             "cell_scale_factors", "outdir"]


# -------------------------------------------------------------
# Helpers: normalize and expand paths
# -------------------------------------------------------------
def expand_path(p: Optional[str]) -> Optional[str]:
    """Expand ~ and make absolute, or None if blank."""
    if p is None:
        return None
    p = str(p).strip()
    if not p:
        return None
    path = Path(p).expanduser()
    return str(path if path.is_absolute() else path.resolve())


def resolve_paths(args: Any) -> Dict[str, Optional[str]]:
    """
    Normalize all input/output paths in a CLI namespace or dict.

    Examples
    --------
    >>> from argparse import Namespace
    >>> resolve_paths(Namespace(bulk="", outdir="~/out"))["bulk"] is None
    True
    """
    if hasattr(args, "__dict__"):
        items = vars(args)
    elif isinstance(args, dict):
        items = args
    else:
        raise TypeError("resolve_paths() expects dict or argparse.Namespace")
    return {k: expand_path(items.get(k)) for k in PATH_KEYS}


def timestamped_run_root(root_name: str = "bisque_param_runs") -> str:
    """~/bisque_param_runs/2025-10-27_153012"""
    stamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    root = Path.home() / root_name / stamp
    root.mkdir(parents=True, exist_ok=True)
    return str(root)


if __name__ == "__main__":
    import json
    print(json.dumps(USER_DEFAULTS, indent=2))
