#!/usr/bin/env python3
"""
Batch reconciliation and independent-bulk partitioning
BatchPartition, parse_batches, parse_bulk_expression_independent
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, NamedTuple, Optional, Sequence, Tuple

import anndata as ad
import pandas as pd

from .containers import expression_matrix
from .errors import EmptyOverlap, InsufficientIndependentData, MissingAnnotationKey
from .reference import unique_in_order


@dataclass(frozen=True)
class BatchPartition:
    """Set relationship between bulk and single-cell batch ids (first-seen order)."""
    id_sc: Tuple[str, ...]
    id_bulk: Tuple[str, ...]
    id_overlap: Tuple[str, ...]
    id_unique: Tuple[str, ...]
    id_only_bulk: Tuple[str, ...]
    id_only_sc: Tuple[str, ...]

    def summary(self) -> Dict[str, object]:
        return {
            "n_batches_sc": len(self.id_sc),
            "n_batches_bulk": len(self.id_bulk),
            "n_overlap": len(self.id_overlap),
            "n_only_bulk": len(self.id_only_bulk),
            "n_only_sc": len(self.id_only_sc),
            "id_overlap": list(self.id_overlap),
            "id_only_bulk": list(self.id_only_bulk),
            "id_only_sc": list(self.id_only_sc),
        }


class IndependentBulk(NamedTuple):
    bulk_expression: pd.DataFrame
    bulk_expression_independent: pd.DataFrame


def _without(values: Sequence[str], drop: Iterable[str]) -> Tuple[str, ...]:
    drop = set(drop)
    return tuple(v for v in values if v not in drop)


def parse_batches(batch_variable: str, bulk_container: ad.AnnData, id_sc: Sequence[str]) -> BatchPartition:
    """
    Compare batch ids of the bulk container with the single-cell ones.

    Raises
    ------
    MissingAnnotationKey
        `batch_variable` is not a column of bulk_container.obs.
    EmptyOverlap
        No batch is shared; reference-based decomposition cannot proceed.
    """
    print("[PARAM] Checking batch ids in bulk and single-cell data...")
    if batch_variable not in bulk_container.obs.columns:
        raise MissingAnnotationKey(batch_variable, "bulk", bulk_container.obs.columns)

    id_sc = unique_in_order(id_sc)
    id_bulk = unique_in_order(bulk_container.obs[batch_variable])
    sc_set = set(id_sc)
    id_overlap = tuple(b for b in id_bulk if b in sc_set)
    if not id_overlap:
        raise EmptyOverlap(
            f"No '{batch_variable}' ids shared between bulk ({len(id_bulk)}) and single-cell ({len(id_sc)}) data."
        )

    return BatchPartition(
        id_sc=id_sc,
        id_bulk=id_bulk,
        id_overlap=id_overlap,
        id_unique=unique_in_order(list(id_sc) + list(id_bulk)),
        id_only_bulk=_without(id_bulk, id_overlap),
        id_only_sc=_without(id_sc, id_overlap),
    )


def parse_bulk_expression_independent(
    id_only_bulk: Sequence[str],
    bulk_expression: pd.DataFrame,
    bulk_container: ad.AnnData,
    batch_variable: str = "batch.id",
    bulk_expression_independent: Optional[pd.DataFrame] = None,
) -> IndependentBulk:
    """
    Split bulk samples into the overlapping set and the independent hold-out.

    The independent matrix is derived from the bulk container (samples whose
    batch id is bulk-only) unless supplied. The returned bulk matrix never
    shares a sample label with it.
    """
    if bulk_expression_independent is None:
        if len(id_only_bulk) == 0:
            raise InsufficientIndependentData(
                "No bulk-only batches to hold out and no bulk_expression_independent supplied."
            )
        print("[PARAM] Making bulk_expression_independent from the bulk container...")
        keep = bulk_container.obs[batch_variable].astype(str).isin(set(id_only_bulk)).values
        bulk_expression_independent = expression_matrix(bulk_container[keep]).copy()

    independent_samples = set(map(str, bulk_expression_independent.columns))
    shared = [c for c in bulk_expression.columns if str(c) in independent_samples]
    remaining = bulk_expression.drop(columns=shared).copy()
    print(f"[PARAM] Bulk samples: {remaining.shape[1]} overlapping, "
          f"{bulk_expression_independent.shape[1]} independent")
    return IndependentBulk(remaining, bulk_expression_independent)


__all__ = ["BatchPartition", "IndependentBulk", "parse_batches", "parse_bulk_expression_independent"]
