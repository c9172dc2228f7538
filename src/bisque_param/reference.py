#!/usr/bin/env python3
"""
Reference builder
reference_from_single_cell, parse_reference_expression
"""

from __future__ import annotations

from typing import NamedTuple, Optional, Tuple

import anndata as ad
import numpy as np
import pandas as pd
from scipy import sparse

from .errors import MissingAnnotationKey


class ReferenceInputs(NamedTuple):
    reference_expression: pd.DataFrame
    id_sc: Tuple[str, ...]


def _require_obs_key(adata: ad.AnnData, key: str, where: str) -> None:
    if key not in adata.obs.columns:
        raise MissingAnnotationKey(key, where, adata.obs.columns)


def unique_in_order(values) -> Tuple[str, ...]:
    """Unique string labels in first-seen order."""
    return tuple(pd.Series(values).astype(str).unique())


def reference_from_single_cell(adata: ad.AnnData, cell_type_variable: str = "celltype") -> pd.DataFrame:
    """
    Signature matrix Z: mean expression of every gene within each cell type.

    Parameters
    ----------
    adata : AnnData
        Canonical single-cell container (cells x genes, assay already in .X).
    cell_type_variable : str
        obs column holding cell-type labels.

    Returns
    -------
    DataFrame, genes x cell types. One column per distinct label.
    """
    _require_obs_key(adata, cell_type_variable, "single-cell")

    X = adata.X
    if sparse.issparse(X):
        X = X.tocsr()
    cell_types = adata.obs[cell_type_variable].astype(str).values
    unique_types = np.unique(cell_types)

    ref = np.zeros((adata.n_vars, len(unique_types)), dtype=float)
    for j, ct in enumerate(unique_types):
        mask = cell_types == ct
        X_ct = X[mask, :]
        if sparse.issparse(X_ct):
            ref[:, j] = np.asarray(X_ct.mean(axis=0)).ravel()
        else:
            ref[:, j] = np.asarray(X_ct, dtype=float).mean(axis=0)

    return pd.DataFrame(ref, index=adata.var_names.astype(str), columns=unique_types)


def parse_reference_expression(
    sc_data: ad.AnnData,
    reference_expression: Optional[pd.DataFrame] = None,
    batch_variable: str = "batch.id",
    cell_type_variable: str = "celltype",
) -> ReferenceInputs:
    """Resolve Z (built only when not supplied) and the single-cell batch ids."""
    _require_obs_key(sc_data, cell_type_variable, "single-cell")
    if reference_expression is None:
        print(f"[PARAM] Building reference from single-cell data by '{cell_type_variable}'...")
        reference_expression = reference_from_single_cell(sc_data, cell_type_variable)
    _require_obs_key(sc_data, batch_variable, "single-cell")
    id_sc = unique_in_order(sc_data.obs[batch_variable])
    return ReferenceInputs(reference_expression, id_sc)


__all__ = ["ReferenceInputs", "reference_from_single_cell", "parse_reference_expression", "unique_in_order"]
