#!/usr/bin/env python3
"""
Bisque parameter object
BaseParameters, BisqueParameters, bisque_param, validate_base, parameter_metadata

Construction runs strictly in sequence:
  inputs parsed -> reference resolved -> batches reconciled
  -> scale factors resolved -> independent bulk partitioned -> parameters built
Any failure aborts; no partial object is returned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import anndata as ad
import pandas as pd

from .batches import BatchPartition, parse_batches, parse_bulk_expression_independent
from .containers import parse_bulk_expression, parse_single_cell_data
from .errors import DimensionMismatch
from .reference import parse_reference_expression
from .scale_factors import ScaleFactors, parse_cell_scale_factors, zs_transform

DEF_ASSAY_NAME = "counts"
DEF_BATCH_VARIABLE = "batch.id"
DEF_CELL_TYPE_VARIABLE = "celltype"


@dataclass(frozen=True, eq=False)
class BaseParameters:
    """Fields shared by every reference-based deconvolution method."""
    bulk_expression: pd.DataFrame = field(repr=False)
    bulk_expression_independent: pd.DataFrame = field(repr=False)
    reference_expression: pd.DataFrame = field(repr=False)
    cell_scale_factors: pd.Series = field(repr=False)
    return_info: bool = False


@dataclass(frozen=True, eq=False)
class BisqueParameters:
    """Inputs for one Bisque reference-based decomposition run."""
    base: BaseParameters
    bulk_container: ad.AnnData = field(repr=False)
    sc_data: ad.AnnData = field(repr=False)
    batches: BatchPartition = field(repr=False)
    assay_name: str = DEF_ASSAY_NAME
    batch_variable: str = DEF_BATCH_VARIABLE
    cell_type_variable: str = DEF_CELL_TYPE_VARIABLE
    use_overlap: bool = False

    @property
    def bulk_expression(self) -> pd.DataFrame:
        return self.base.bulk_expression

    @property
    def bulk_expression_independent(self) -> pd.DataFrame:
        return self.base.bulk_expression_independent

    @property
    def reference_expression(self) -> pd.DataFrame:
        return self.base.reference_expression

    @property
    def cell_scale_factors(self) -> pd.Series:
        return self.base.cell_scale_factors

    @property
    def return_info(self) -> bool:
        return self.base.return_info


def bisque_param(
    bulk_expression: Optional[pd.DataFrame] = None,
    bulk_container=None,
    bulk_expression_independent: Optional[pd.DataFrame] = None,
    reference_expression: Optional[pd.DataFrame] = None,
    cell_scale_factors: Optional[ScaleFactors] = None,
    sc_data=None,
    assay_name: str = DEF_ASSAY_NAME,
    batch_variable: str = DEF_BATCH_VARIABLE,
    cell_type_variable: str = DEF_CELL_TYPE_VARIABLE,
    use_overlap: bool = False,
    return_info: bool = False,
) -> BisqueParameters:
    """
    Build a validated parameter object for Bisque deconvolution.

    Parameters
    ----------
    bulk_expression : DataFrame | None
        Bulk matrix, genes x samples.
    bulk_container : AnnData | AssayContainer | ExpressionSet | None
        Bulk samples with per-sample metadata (must hold `batch_variable`).
        When absent, one is synthesised from `bulk_expression`.
    bulk_expression_independent : DataFrame | None
        Bulk samples without single-cell counterparts. Derived from the
        bulk-only batches when absent.
    reference_expression : DataFrame | None
        Signature matrix Z, genes x cell types. Built from `sc_data` by
        per-type means when absent.
    cell_scale_factors : Series | Mapping | None
        Per-cell-type size factors; defaults to ones.
    sc_data : AnnData | AssayContainer | ExpressionSet
        Single-cell reference with `cell_type_variable` and `batch_variable`
        among its per-cell metadata.
    assay_name : str
        Layer/assay to read expression from.
    batch_variable, cell_type_variable : str
        Metadata keys for batch ids and cell-type labels.
    use_overlap : bool
        Train the bulk transformation on overlapping batches.
    return_info : bool
        Return the raw decomposition output and metadata with the predictions.

    Returns
    -------
    BisqueParameters
    """
    # 1) inputs
    bulk = parse_bulk_expression(bulk_expression, bulk_container, assay_name, batch_variable)
    sc_adata = parse_single_cell_data(sc_data, assay_name)
    print(f"[PARAM] Inputs parsed: bulk {bulk.bulk_expression.shape[0]} genes x "
          f"{bulk.bulk_expression.shape[1]} samples; single-cell {sc_adata.n_obs} cells")

    # 2) reference
    ref = parse_reference_expression(sc_adata, reference_expression, batch_variable, cell_type_variable)
    print(f"[PARAM] Reference resolved: {ref.reference_expression.shape[1]} cell types")

    # 3) batches
    batches = parse_batches(batch_variable, bulk.bulk_container, ref.id_sc)
    print(f"[PARAM] Batches reconciled: {len(batches.id_overlap)} overlapping, "
          f"{len(batches.id_only_bulk)} bulk-only, {len(batches.id_only_sc)} single-cell-only")

    # 4) scale factors
    factors = parse_cell_scale_factors(ref.reference_expression, cell_scale_factors)
    print(f"[PARAM] Scale factors resolved: {len(factors)} cell types "
          f"({'supplied' if cell_scale_factors is not None else 'default 1.0'})")

    # 5) independent bulk
    split = parse_bulk_expression_independent(
        batches.id_only_bulk,
        bulk.bulk_expression,
        bulk.bulk_container,
        batch_variable,
        bulk_expression_independent,
    )

    base = BaseParameters(
        bulk_expression=split.bulk_expression,
        bulk_expression_independent=split.bulk_expression_independent,
        reference_expression=ref.reference_expression,
        cell_scale_factors=factors,
        return_info=return_info,
    )
    return BisqueParameters(
        base=base,
        bulk_container=bulk.bulk_container,
        sc_data=sc_adata,
        batches=batches,
        assay_name=assay_name,
        batch_variable=batch_variable,
        cell_type_variable=cell_type_variable,
        use_overlap=use_overlap,
    )


def validate_base(base: BaseParameters) -> None:
    """Cross-checks needed before any decomposition; raises DimensionMismatch."""
    shared = set(map(str, base.bulk_expression.columns)) & set(map(str, base.bulk_expression_independent.columns))
    if shared:
        raise DimensionMismatch(f"Bulk and independent bulk share samples: {sorted(shared)[:5]}")

    ref = base.reference_expression
    if ref.columns.has_duplicates:
        raise DimensionMismatch("Reference expression has duplicated cell-type labels.")

    bulk_genes = set(map(str, base.bulk_expression.index)) | set(map(str, base.bulk_expression_independent.index))
    overlap = bulk_genes & set(map(str, ref.index))
    if not overlap:
        raise DimensionMismatch("No marker labels shared between bulk and reference expression.")

    zs_transform(ref, base.cell_scale_factors)


def parameter_metadata(base: BaseParameters) -> Dict[str, Any]:
    """Marker, sample and type summaries of a parameter set."""
    bulk = base.bulk_expression
    ref = base.reference_expression
    markers_bulk = list(map(str, bulk.index))
    markers_ref = list(map(str, ref.index))
    ref_set = set(markers_ref)
    return {
        "marker_genes": int(ref.shape[0]),
        "bulk_samples": int(bulk.shape[1]),
        "independent_samples": int(base.bulk_expression_independent.shape[1]),
        "number_cell_types_k": int(ref.shape[1]),
        "unique_types": sorted(map(str, ref.columns)),
        "cell_scale_factors": {str(k): float(v) for k, v in base.cell_scale_factors.items()},
        "unique_markers": len(set(markers_bulk) | ref_set),
        "overlapping_markers": sum(1 for g in set(markers_bulk) if g in ref_set),
        "markers_bulk_expression": markers_bulk,
        "markers_reference_expression": markers_ref,
    }


__all__ = [
    "BaseParameters",
    "BisqueParameters",
    "bisque_param",
    "validate_base",
    "parameter_metadata",
]
