#!/usr/bin/env python3
"""
Reference-based decomposition (Bisque)
reference_based_decomposition

Bulk expression is transformed gene-by-gene onto the scale of single-cell
pseudobulk, then each bulk sample is decomposed with non-negative least
squares under a sum-to-one constraint.

Jew, B. et al. Accurate estimation of cell composition in bulk expression
through robust integration of single-cell information. Nat Commun 11, 1971 (2020).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import anndata as ad
import numpy as np
import pandas as pd
import scanpy as sc
from scipy import sparse
from scipy.optimize import nnls

from .containers import expression_matrix
from .errors import DimensionMismatch, MissingAnnotationKey
from .reference import reference_from_single_cell, unique_in_order

# weight of the sum-to-one row in the augmented NNLS system (inputs rescaled to max 1)
SUM_CONSTRAINT_WEIGHT = 1e3


@dataclass
class BisqueResult:
    """Raw decomposition output."""
    bulk_props: pd.DataFrame                 # cell types x bulk samples
    sc_props: pd.DataFrame                   # cell types x single-cell batches
    rnorm: pd.Series                         # residual norm per bulk sample
    genes_used: List[str] = field(default_factory=list)
    transformed_bulk: Optional[pd.DataFrame] = None   # genes x bulk samples


def counts_to_cpm(adata: ad.AnnData) -> ad.AnnData:
    """Copy of `adata` scaled to counts per million per observation."""
    X = adata.X
    X = X.astype(np.float64) if sparse.issparse(X) else np.array(X, dtype=np.float64)
    out = ad.AnnData(X=X, obs=adata.obs.copy(), var=pd.DataFrame(index=adata.var_names.copy()))
    sc.pp.normalize_total(out, target_sum=1e6)
    return out


def _gene_variance(X) -> np.ndarray:
    if sparse.issparse(X):
        mean = np.asarray(X.mean(axis=0)).ravel()
        mean_sq = np.asarray(X.multiply(X).mean(axis=0)).ravel()
        return mean_sq - mean ** 2
    return np.asarray(X).var(axis=0)


def _standardize(m: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Row-wise (x - mean) / sd with sample sd; zero sd gives NaN rows."""
    center = m.mean(axis=1, keepdims=True)
    scale = m.std(axis=1, ddof=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        scaled = (m - center) / scale
    scaled[~np.isfinite(scaled)] = np.nan
    return scaled, center, scale


def semisupervised_transform(Y_train: pd.DataFrame, X_pred: pd.DataFrame) -> pd.DataFrame:
    """
    Map bulk onto the pseudobulk scale without paired samples.

    Each gene's bulk values are standardised, then rescaled with a shrunk
    pseudobulk spread sqrt(sum((y - mean)^2) / n + 1) and recentred on the
    pseudobulk mean.
    """
    y = Y_train.to_numpy(dtype=float)
    x = X_pred.to_numpy(dtype=float)
    y_center = y.mean(axis=1, keepdims=True)
    n = y.shape[1]
    shrink_scale = np.sqrt(((y - y_center) ** 2).sum(axis=1, keepdims=True) / n + 1)
    x_scaled, _, _ = _standardize(x)
    return pd.DataFrame(x_scaled * shrink_scale + y_center, index=X_pred.index, columns=X_pred.columns)


def supervised_transform(Y_train: pd.DataFrame, X_train: pd.DataFrame, X_pred: pd.DataFrame) -> pd.DataFrame:
    """
    Map bulk onto the pseudobulk scale using paired (overlapping) batches.

    Per gene, a through-origin regression of standardised pseudobulk on
    standardised bulk is fitted on the training pairs and applied to X_pred.
    Genes without variance in either training set come back as NaN.
    """
    y_scaled, y_center, y_scale = _standardize(Y_train.to_numpy(dtype=float))
    x_scaled, x_center, x_scale = _standardize(X_train.to_numpy(dtype=float))
    with np.errstate(divide="ignore", invalid="ignore"):
        coeff = (x_scaled * y_scaled).sum(axis=1, keepdims=True) / (x_scaled ** 2).sum(axis=1, keepdims=True)
        x_pred_scaled = (X_pred.to_numpy(dtype=float) - x_center) / x_scale
    y_pred = x_pred_scaled * coeff * y_scale + y_center
    y_pred[~np.isfinite(y_pred)] = np.nan
    return pd.DataFrame(y_pred, index=X_pred.index, columns=X_pred.columns)


def nnls_sum_to_one(A: np.ndarray, b: np.ndarray, weight: float = SUM_CONSTRAINT_WEIGHT) -> Tuple[np.ndarray, float]:
    """
    min ||A x - b|| subject to x >= 0 and sum(x) = 1.

    The equality is enforced by a heavily weighted row of ones appended to
    the system; the solution is renormalised to sum exactly to one.
    """
    s = float(np.abs(A).max()) or 1.0
    A_aug = np.vstack([A / s, np.full((1, A.shape[1]), weight)])
    b_aug = np.append(b / s, weight)
    x, _ = nnls(A_aug, b_aug)
    total = x.sum()
    if total > 0:
        x = x / total
    rnorm = float(np.linalg.norm(A @ x - b))
    return x, rnorm


def sc_cell_proportions(sc_data: ad.AnnData, batch_variable: str, cell_type_variable: str) -> pd.DataFrame:
    """Fraction of each cell type within each single-cell batch (types x batches)."""
    types = sc_data.obs[cell_type_variable].astype(str).values
    batches = sc_data.obs[batch_variable].astype(str).values
    props = pd.crosstab(types, batches, normalize="columns")
    props.index.name = None
    props.columns.name = None
    order = list(unique_in_order(batches))
    return props.sort_index().reindex(columns=order)


def reference_based_decomposition(
    bulk: ad.AnnData,
    sc_data: ad.AnnData,
    *,
    batch_variable: str = "batch.id",
    cell_type_variable: str = "celltype",
    use_overlap: bool = True,
    markers: Optional[Iterable[str]] = None,
) -> BisqueResult:
    """
    Estimate cell-type proportions of bulk samples from a single-cell reference.

    Parameters
    ----------
    bulk : AnnData
        Bulk samples x genes, raw counts in .X. `batch_variable` in .obs links
        samples to single-cell batches (needed when `use_overlap`).
    sc_data : AnnData
        Cells x genes, raw counts in .X, with `batch_variable` and
        `cell_type_variable` in .obs.
    use_overlap : bool
        If True, overlapping batches train a supervised transform and only the
        remaining bulk samples are decomposed. Otherwise every bulk sample is
        decomposed after a semi-supervised transform.
    markers : iterable of str | None
        Restrict decomposition to these genes.

    Returns
    -------
    BisqueResult
    """
    for key in (cell_type_variable, batch_variable):
        if key not in sc_data.obs.columns:
            raise MissingAnnotationKey(key, "single-cell", sc_data.obs.columns)
    if bulk.n_obs < 2:
        raise DimensionMismatch("Decomposition requires at least two bulk samples.")
    if use_overlap and batch_variable not in bulk.obs.columns:
        raise MissingAnnotationKey(batch_variable, "bulk", bulk.obs.columns)

    # --- genes ---
    bulk_genes = set(map(str, bulk.var_names))
    genes = [g for g in map(str, sc_data.var_names) if g in bulk_genes]
    if markers is not None:
        marker_set = set(map(str, markers))
        genes = [g for g in genes if g in marker_set]
    if not genes:
        raise DimensionMismatch("No genes shared between bulk and single-cell data.")

    sc_cpm = counts_to_cpm(sc_data[:, genes])
    bulk_cpm = expression_matrix(counts_to_cpm(bulk[:, genes]))

    keep = (_gene_variance(sc_cpm.X) > 1e-12) & (bulk_cpm.sum(axis=1).to_numpy() > 0)
    genes = [g for g, k in zip(genes, keep) if k]
    if not genes:
        raise DimensionMismatch("No variable, expressed genes left after filtering.")
    print(f"[BISQUE] Using {len(genes)} genes shared by bulk and single-cell data")

    sc_ref = reference_from_single_cell(sc_cpm[:, genes], cell_type_variable)
    sc_props = sc_cell_proportions(sc_data, batch_variable, cell_type_variable).reindex(sc_ref.columns)
    pseudobulk = sc_ref @ sc_props
    X = bulk_cpm.loc[genes]

    # --- transform bulk ---
    if use_overlap:
        bulk_batches = bulk.obs[batch_variable].astype(str)
        bulk_batches.index = bulk_batches.index.astype(str)
        overlapping = [b for b in unique_in_order(bulk_batches) if b in set(sc_props.columns)]
        if len(overlapping) < 2:
            raise DimensionMismatch(
                f"use_overlap needs at least two overlapping batches, found {len(overlapping)}."
            )
        in_overlap = bulk_batches.isin(overlapping)
        remaining = list(bulk_batches.index[~in_overlap])
        if not remaining:
            raise DimensionMismatch("use_overlap leaves no bulk samples outside overlapping batches.")
        print(f"[BISQUE] Training transform on {len(overlapping)} overlapping batches; "
              f"decomposing {len(remaining)} remaining samples")
        X_train = X.loc[:, in_overlap.values].T.groupby(bulk_batches[in_overlap].values).mean().T
        Y_pred = supervised_transform(pseudobulk[overlapping], X_train[overlapping], X[remaining])
    else:
        print(f"[BISQUE] Semi-supervised transform of {X.shape[1]} bulk samples")
        Y_pred = semisupervised_transform(pseudobulk, X)

    Y_pred = Y_pred[~Y_pred.isna().any(axis=1)]
    if Y_pred.empty:
        raise DimensionMismatch("Zero genes left for decomposition after transforming bulk.")
    ref = sc_ref.loc[Y_pred.index]

    # --- decompose ---
    A = ref.to_numpy(dtype=float)
    props = np.zeros((A.shape[1], Y_pred.shape[1]))
    rnorm = np.zeros(Y_pred.shape[1])
    for j, sample in enumerate(Y_pred.columns):
        props[:, j], rnorm[j] = nnls_sum_to_one(A, Y_pred[sample].to_numpy(dtype=float))

    print(f"[BISQUE] Decomposed {Y_pred.shape[1]} samples into {A.shape[1]} cell types")
    return BisqueResult(
        bulk_props=pd.DataFrame(props, index=ref.columns, columns=Y_pred.columns),
        sc_props=sc_props,
        rnorm=pd.Series(rnorm, index=Y_pred.columns, name="rnorm"),
        genes_used=list(Y_pred.index),
        transformed_bulk=Y_pred,
    )


__all__ = [
    "BisqueResult",
    "reference_based_decomposition",
    "counts_to_cpm",
    "semisupervised_transform",
    "supervised_transform",
    "nnls_sum_to_one",
    "sc_cell_proportions",
]
