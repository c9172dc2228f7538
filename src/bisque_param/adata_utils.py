# src/bisque_param/adata_utils.py
from __future__ import annotations

from pathlib import Path
from typing import List

import anndata as ad


def find_h5ad_files(root_or_file: str) -> List[str]:
    """
    A .h5ad file -> [that file]; a directory -> its *.h5ad files (non-recursive, sorted).
    """
    p = Path(root_or_file)
    if p.is_file() and p.suffix.lower() == ".h5ad":
        return [str(p.resolve())]
    if p.is_dir():
        return [str(q.resolve()) for q in sorted(p.glob("*.h5ad"))]
    raise FileNotFoundError(f"Not a .h5ad file or directory: {root_or_file}")


def read_single_cell(root_or_file: str) -> ad.AnnData:
    """
    Load one or more .h5ad files as a single AnnData.

    Several files are concatenated along cells with an inner join on genes,
    so every cell keeps a value for every retained gene.
    """
    files = find_h5ad_files(root_or_file)
    if not files:
        raise FileNotFoundError(f"No .h5ad files found under: {root_or_file}")
    print(f"[IO] Reading {len(files)} .h5ad file(s)")
    adatas = [ad.read_h5ad(f) for f in files]
    if len(adatas) == 1:
        return adatas[0]
    merged = ad.concat(adatas, axis=0, join="inner", merge="same", index_unique="-")
    print(f"[IO] Merged single-cell data: {merged.n_obs:,} cells x {merged.n_vars:,} genes")
    return merged


__all__ = ["find_h5ad_files", "read_single_cell"]
