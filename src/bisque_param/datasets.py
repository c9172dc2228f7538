# src/bisque_param/datasets.py
from __future__ import annotations

from typing import Any, Dict, Sequence

import anndata as ad
import numpy as np
import pandas as pd


def _nb_counts(rng: np.random.Generator, mu: np.ndarray, dispersion: float) -> np.ndarray:
    """Negative-binomial counts as a gamma-Poisson mixture with mean `mu`."""
    shape = 1.0 / dispersion
    lam = rng.gamma(shape, mu / shape)
    return rng.poisson(lam).astype(float)


def example_data_bisque(
    n_genes: int = 200,
    cell_types: Sequence[str] = ("Astro", "Excit", "Inhib"),
    n_cells_per_type: int = 40,
    batches_sc: Sequence[str] = ("B", "C", "D"),
    batches_bulk: Sequence[str] = ("A", "B", "C"),
    samples_per_batch: int = 2,
    bulk_depth: float = 2e5,
    dispersion: float = 0.2,
    batch_variable: str = "batch.id",
    cell_type_variable: str = "celltype",
    seed: int = 0,
) -> Dict[str, Any]:
    """
    Simulate a matched bulk / single-cell pair for trying out the pipeline.

    Every cell type gets a gamma-distributed expression profile with its own
    block of up-regulated marker genes. Single-cell batches draw a varying
    number of cells per type; bulk samples mix the profiles with Dirichlet
    proportions.

    Returns
    -------
    dict with keys
      - bulk_container   : AnnData, samples x genes, obs[batch_variable]
      - bulk_expression  : DataFrame, genes x samples
      - sc_data          : AnnData, cells x genes, obs[cell_type_variable, batch_variable],
                           counts in .X and .layers['counts']
      - true_proportions : DataFrame, samples x cell types
    """
    rng = np.random.default_rng(seed)
    cell_types = list(cell_types)
    n_types = len(cell_types)
    genes = [f"gene_{i:04d}" for i in range(n_genes)]

    profiles = rng.gamma(2.0, 2.0, size=(n_genes, n_types))
    block = max(1, n_genes // (2 * n_types))
    for k in range(n_types):
        profiles[k * block:(k + 1) * block, k] *= 8.0
    profiles /= profiles.sum(axis=0, keepdims=True)

    # --- single-cell ---
    blocks, obs_rows = [], []
    for batch in batches_sc:
        for k, ct in enumerate(cell_types):
            n = int(rng.integers(max(1, n_cells_per_type // 2), n_cells_per_type * 3 // 2 + 1))
            depth = rng.uniform(2e3, 6e3, size=(n, 1))
            blocks.append(_nb_counts(rng, depth * profiles[:, k][None, :], dispersion))
            obs_rows.extend({cell_type_variable: ct, batch_variable: batch} for _ in range(n))
    X_sc = np.vstack(blocks)
    sc_obs = pd.DataFrame(obs_rows, index=[f"cell_{i:05d}" for i in range(len(obs_rows))])
    sc_data = ad.AnnData(X=X_sc, obs=sc_obs, var=pd.DataFrame(index=genes))
    sc_data.layers["counts"] = X_sc.copy()

    # --- bulk ---
    samples, batch_of, props = [], [], []
    for batch in batches_bulk:
        for i in range(samples_per_batch):
            samples.append(f"{batch}_s{i + 1}")
            batch_of.append(batch)
            props.append(rng.dirichlet(np.full(n_types, 2.0)))
    props = np.vstack(props)
    X_bulk = _nb_counts(rng, bulk_depth * props @ profiles.T, dispersion / 4)

    bulk_obs = pd.DataFrame({batch_variable: batch_of}, index=samples)
    bulk_container = ad.AnnData(X=X_bulk, obs=bulk_obs, var=pd.DataFrame(index=genes))
    bulk_expression = pd.DataFrame(X_bulk.T, index=genes, columns=samples)
    true_proportions = pd.DataFrame(props, index=samples, columns=cell_types)

    return {
        "bulk_container": bulk_container,
        "bulk_expression": bulk_expression,
        "sc_data": sc_data,
        "true_proportions": true_proportions,
    }


__all__ = ["example_data_bisque"]
