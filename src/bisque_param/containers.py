#!/usr/bin/env python3
"""
Expression container adapter
ExpressionSet, AssayContainer, as_anndata, expression_matrix,
parse_single_cell_data, parse_bulk_expression

All inputs are normalised once, at the boundary, into one canonical
AnnData: obs = samples (or cells), var = genes, .X = the selected assay.
Matrices handed back to callers are genes x samples DataFrames.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import singledispatch
from typing import Dict, NamedTuple, Optional

import anndata as ad
import numpy as np
import pandas as pd
from scipy import sparse

from .errors import DimensionMismatch, UnsupportedInputType

REPLICATE_SUFFIX = "_rep1"
REPLICATE_FLAG = "is_replicate"


@dataclass
class ExpressionSet:
    """Flat container: one genes x samples matrix plus a per-sample table."""
    exprs: pd.DataFrame
    pheno: Optional[pd.DataFrame] = None


@dataclass
class AssayContainer:
    """Several named genes x samples assays sharing column (sample) metadata."""
    assays: Dict[str, pd.DataFrame] = field(default_factory=dict)
    col_data: Optional[pd.DataFrame] = None
    row_data: Optional[pd.DataFrame] = None


class BulkInputs(NamedTuple):
    bulk_expression: pd.DataFrame
    bulk_container: ad.AnnData


def to_dense(X) -> np.ndarray:
    return X.toarray() if sparse.issparse(X) else np.asarray(X)


def _check_unique_axes(features: pd.Index, samples: pd.Index, what: str) -> None:
    if features.has_duplicates:
        dups = features[features.duplicated()].unique().tolist()[:5]
        raise DimensionMismatch(f"{what} has duplicated feature labels, e.g. {dups}")
    if samples.has_duplicates:
        dups = samples[samples.duplicated()].unique().tolist()[:5]
        raise DimensionMismatch(f"{what} has duplicated sample labels, e.g. {dups}")


def _check_unique_labels(matrix: pd.DataFrame, what: str) -> None:
    _check_unique_axes(matrix.index, matrix.columns, what)


def _aligned_obs(samples: pd.Index, meta: Optional[pd.DataFrame], what: str) -> pd.DataFrame:
    """Per-sample metadata re-indexed to the matrix columns."""
    if meta is None:
        return pd.DataFrame(index=samples)
    meta = meta.copy()
    meta.index = meta.index.astype(str)
    missing = samples.difference(meta.index)
    if len(missing):
        raise DimensionMismatch(
            f"{what} metadata lacks {len(missing)} sample(s), e.g. {missing[:5].tolist()}"
        )
    return meta.loc[samples]


def _from_frame(matrix: pd.DataFrame, meta: Optional[pd.DataFrame], what: str,
                var: Optional[pd.DataFrame] = None) -> ad.AnnData:
    _check_unique_labels(matrix, what)
    matrix = matrix.copy()
    matrix.index = matrix.index.astype(str)
    matrix.columns = matrix.columns.astype(str)
    obs = _aligned_obs(matrix.columns, meta, what)
    if var is None:
        var = pd.DataFrame(index=matrix.index)
    else:
        var = var.copy()
        var.index = var.index.astype(str)
        var = var.reindex(matrix.index)
    return ad.AnnData(X=matrix.to_numpy(dtype=float).T, obs=obs, var=var)


@singledispatch
def as_anndata(data, assay_name: str = "counts") -> ad.AnnData:
    """Convert any supported container to the canonical AnnData (always a copy)."""
    raise UnsupportedInputType(
        f"Unsupported expression container: {type(data).__name__}. "
        "Expected AnnData, AssayContainer, ExpressionSet or a genes x samples DataFrame."
    )


@as_anndata.register(ad.AnnData)
def _(data: ad.AnnData, assay_name: str = "counts") -> ad.AnnData:
    _check_unique_axes(data.var_names, data.obs_names, "AnnData")
    if assay_name in data.layers:
        X = data.layers[assay_name]
    else:
        print(f"[WARN] Assay '{assay_name}' not in AnnData.layers; using .X")
        X = data.X
    if X is None:
        raise UnsupportedInputType("AnnData has no expression matrix (.X is None).")
    X = X.copy() if sparse.issparse(X) else np.array(X, copy=True)
    return ad.AnnData(X=X, obs=data.obs.copy(), var=data.var.copy())


@as_anndata.register(AssayContainer)
def _(data: AssayContainer, assay_name: str = "counts") -> ad.AnnData:
    if assay_name not in data.assays:
        raise UnsupportedInputType(
            f"Assay '{assay_name}' not found; available assays: {sorted(data.assays)}"
        )
    return _from_frame(data.assays[assay_name], data.col_data, "AssayContainer", var=data.row_data)


@as_anndata.register(ExpressionSet)
def _(data: ExpressionSet, assay_name: str = "counts") -> ad.AnnData:
    return _from_frame(data.exprs, data.pheno, "ExpressionSet")


@as_anndata.register(pd.DataFrame)
def _(data: pd.DataFrame, assay_name: str = "counts") -> ad.AnnData:
    return _from_frame(data, None, "expression matrix")


def expression_matrix(adata: ad.AnnData) -> pd.DataFrame:
    """Dense genes x samples DataFrame from a canonical container."""
    return pd.DataFrame(
        to_dense(adata.X).T,
        index=adata.var_names.astype(str),
        columns=adata.obs_names.astype(str),
    )


def anndata_from_matrix(matrix: pd.DataFrame, batch_variable: str = "batch.id") -> ad.AnnData:
    """
    Wrap a bare bulk matrix in a minimal container.

    Each sample gets its own label as placeholder batch id. A single-sample
    matrix is duplicated (copy labelled `<sample>_rep1`, flagged in
    obs['is_replicate']) because the decomposition needs at least two samples.
    """
    adata = as_anndata(matrix)
    samples = adata.obs_names.astype(str)
    adata.obs[batch_variable] = list(samples)
    adata.obs[REPLICATE_FLAG] = False
    if adata.n_obs == 1:
        sample = samples[0]
        print(f"[WARN] Single bulk sample '{sample}'; duplicating as '{sample}{REPLICATE_SUFFIX}'")
        rep = adata.copy()
        rep.obs_names = [f"{sample}{REPLICATE_SUFFIX}"]
        rep.obs[REPLICATE_FLAG] = True
        adata = ad.concat([adata, rep], axis=0, merge="same")
    return adata


def parse_single_cell_data(sc_data, assay_name: str = "counts") -> ad.AnnData:
    """Normalise single-cell input; bare matrices carry no per-cell labels and are refused."""
    if sc_data is None:
        raise UnsupportedInputType("Single-cell data is required (sc_data is None).")
    if isinstance(sc_data, pd.DataFrame):
        raise UnsupportedInputType(
            "Single-cell data must be an AnnData, AssayContainer or ExpressionSet; got a bare DataFrame."
        )
    return as_anndata(sc_data, assay_name)


def parse_bulk_expression(
    bulk_expression: Optional[pd.DataFrame] = None,
    bulk_container=None,
    assay_name: str = "counts",
    batch_variable: str = "batch.id",
) -> BulkInputs:
    """Reconcile a bulk matrix and/or container into a (matrix, container) pair."""
    if bulk_expression is None and bulk_container is None:
        raise UnsupportedInputType("Provide bulk_expression and/or bulk_container.")
    if bulk_expression is not None:
        if not isinstance(bulk_expression, pd.DataFrame):
            raise UnsupportedInputType(
                f"bulk_expression must be a genes x samples DataFrame, got {type(bulk_expression).__name__}"
            )
        _check_unique_labels(bulk_expression, "bulk_expression")

    if bulk_container is not None:
        container = as_anndata(bulk_container, assay_name)
        if bulk_expression is None:
            bulk_expression = expression_matrix(container)
    else:
        container = anndata_from_matrix(bulk_expression, batch_variable)

    return BulkInputs(bulk_expression, container)


__all__ = [
    "ExpressionSet",
    "AssayContainer",
    "BulkInputs",
    "as_anndata",
    "expression_matrix",
    "anndata_from_matrix",
    "parse_single_cell_data",
    "parse_bulk_expression",
    "to_dense",
]
