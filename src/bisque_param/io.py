# src/bisque_param/io.py
from __future__ import annotations

import csv
import os
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .containers import ExpressionSet

GENE_COL_CANDIDATES = [
    "ensembl_gene_id", "ensembl", "ensembl_id", "gene_id",
    "gene", "genes", "gene_symbol", "gene_symbols", "symbol", "gene_name", "hgnc_symbol",
    "ID", "Name", "Gene", "GeneID", "Gene_Symbol", "Gene.Name",
]


def _sep_for(path: str) -> Optional[str]:
    ext = Path(path).suffix.lower()
    if path.lower().endswith((".csv.gz",)) or ext == ".csv":
        return ","
    if path.lower().endswith((".tsv.gz", ".txt.gz")) or ext in {".tsv", ".txt"}:
        return "\t"
    return None


def load_table_auto(path: str, index_col: Optional[int] = None) -> pd.DataFrame:
    """
    Load a delimited table, choosing the separator from the extension
    (.csv -> comma, .tsv/.txt -> tab) or sniffing it otherwise.
    Lines starting with '#' are comments; latin-1 is tried if UTF-8 fails.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Table not found: {path}")

    sep = _sep_for(str(p))
    if sep is None:
        with p.open("r", encoding="utf-8", errors="ignore", newline="") as f:
            sample = f.read(8192)
        try:
            sep = csv.Sniffer().sniff(sample, delimiters=[",", "\t", ";", "|"]).delimiter
        except csv.Error:
            sep = ","

    try:
        return pd.read_csv(path, sep=sep, index_col=index_col, comment="#", low_memory=False)
    except UnicodeDecodeError:
        return pd.read_csv(path, sep=sep, index_col=index_col, comment="#", low_memory=False,
                           encoding="latin-1")


def _strip_ens_version_series(s: pd.Series) -> pd.Series:
    """Drop Ensembl version suffix (.10 etc.) and surrounding blanks."""
    return s.astype(str).str.strip().str.replace(r"^(ENS[A-Z]*\d+)\.\d+$", r"\1", regex=True)


def _detect_gene_col(df: pd.DataFrame, gene_col: Optional[str]) -> str:
    if gene_col and gene_col in df.columns:
        return gene_col
    gcol = next((c for c in GENE_COL_CANDIDATES if c in df.columns), None)
    if gcol is None:
        nonnum = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
        gcol = nonnum[0] if nonnum else df.columns[0]
    return gcol


def read_bulk_counts(path: str, gene_col: Optional[str] = None) -> pd.DataFrame:
    """
    Bulk matrix (genes x samples) from a CSV/TSV with one gene column.

    - Gene column detected from common names when `gene_col` is absent.
    - Ensembl version suffixes stripped.
    - Non-numeric sample columns dropped; duplicate genes keep the first row.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Bulk file not found: {path}")
    df = load_table_auto(path)
    gcol = _detect_gene_col(df, gene_col)

    for c in df.columns:
        if c != gcol:
            df[c] = pd.to_numeric(df[c], errors="coerce")
    num = df.drop(columns=[gcol]).select_dtypes(include=[np.number])
    num = num.loc[:, num.notna().any(axis=0)]
    if num.shape[1] == 0:
        raise ValueError(f"No numeric sample columns found in bulk file: {path}")

    counts = num.fillna(0.0)
    counts.index = _strip_ens_version_series(df[gcol]).values
    counts.index.name = None
    counts.columns = counts.columns.astype(str)
    n_dup = int(counts.index.duplicated().sum())
    if n_dup:
        print(f"[WARN] {n_dup} duplicated gene id(s) in {Path(path).name}; keeping first occurrence")
    return counts[~counts.index.duplicated(keep="first")]


def read_sample_metadata(path: str, sample_col: Optional[str] = None) -> pd.DataFrame:
    """Per-sample table indexed by sample id (first column when `sample_col` is absent)."""
    meta = load_table_auto(path)
    col = sample_col if sample_col and sample_col in meta.columns else meta.columns[0]
    if sample_col and sample_col not in meta.columns:
        print(f"[WARN] Column '{sample_col}' not in {Path(path).name}; using '{col}' as sample id")
    meta[col] = meta[col].astype(str).str.strip()
    return meta.set_index(col)


def read_bulk_expression_set(
    path: str,
    metadata_path: Optional[str] = None,
    gene_col: Optional[str] = None,
    sample_col: Optional[str] = None,
) -> Tuple[pd.DataFrame, Optional[ExpressionSet]]:
    """Bulk counts plus, when a metadata table is given, an ExpressionSet pairing both."""
    counts = read_bulk_counts(path, gene_col=gene_col)
    if not metadata_path:
        return counts, None
    meta = read_sample_metadata(metadata_path, sample_col=sample_col)
    return counts, ExpressionSet(exprs=counts, pheno=meta)


def read_reference_expression(path: str) -> pd.DataFrame:
    """Signature matrix (genes x cell types) with genes in the first column."""
    ref = load_table_auto(path, index_col=0).apply(pd.to_numeric, errors="coerce")
    if ref.empty:
        raise ValueError(f"Reference table is empty or malformed: {path}")
    ref.index = _strip_ens_version_series(ref.index.to_series()).values
    ref.columns = ref.columns.astype(str)
    return ref


def read_cell_scale_factors(path: str) -> pd.Series:
    """Two-column table: cell type, scale factor."""
    tab = load_table_auto(path)
    if tab.shape[1] < 2:
        raise ValueError(f"Scale-factor table needs two columns (cell type, factor): {path}")
    s = pd.Series(pd.to_numeric(tab.iloc[:, 1], errors="coerce").values,
                  index=tab.iloc[:, 0].astype(str).values, name="cell_scale_factors")
    if s.isna().any():
        raise ValueError(f"Non-numeric scale factors in {path}: {list(s.index[s.isna()])}")
    return s


__all__ = [
    "load_table_auto",
    "read_bulk_counts",
    "read_sample_metadata",
    "read_bulk_expression_set",
    "read_reference_expression",
    "read_cell_scale_factors",
]
