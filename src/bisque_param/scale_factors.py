# src/bisque_param/scale_factors.py
from __future__ import annotations

from typing import Mapping, Optional, Union

import pandas as pd

from .errors import DimensionMismatch

ScaleFactors = Union[pd.Series, Mapping[str, float]]


def parse_cell_scale_factors(
    reference_expression: pd.DataFrame,
    cell_scale_factors: Optional[ScaleFactors] = None,
) -> pd.Series:
    """
    Per-cell-type size factors S.

    Supplied factors are kept as given (checked later by `zs_transform`);
    otherwise every cell type of the reference gets 1.0.
    """
    if cell_scale_factors is not None:
        if isinstance(cell_scale_factors, pd.Series):
            return cell_scale_factors
        return pd.Series(dict(cell_scale_factors), dtype=float)

    unique_types = sorted(map(str, reference_expression.columns))
    return pd.Series(1.0, index=pd.Index(unique_types, name="cell_type"), name="cell_scale_factors")


def zs_transform(reference_expression: pd.DataFrame, cell_scale_factors: pd.Series) -> pd.DataFrame:
    """Scale each reference column by its cell type's factor (Z * S)."""
    ref_types = set(map(str, reference_expression.columns))
    s_types = set(map(str, cell_scale_factors.index))
    if len(cell_scale_factors) != reference_expression.shape[1] or ref_types != s_types:
        raise DimensionMismatch(
            f"cell_scale_factors labels {sorted(s_types)} do not match reference cell types {sorted(ref_types)}"
        )
    factors = pd.to_numeric(cell_scale_factors, errors="coerce").astype(float)
    bad = factors[~(factors > 0)]
    if len(bad):
        raise DimensionMismatch(
            f"cell_scale_factors must be positive numbers; got {bad.to_dict()}"
        )
    factors.index = factors.index.astype(str)
    out = reference_expression.copy()
    out.columns = out.columns.astype(str)
    return out.mul(factors.reindex(out.columns).astype(float), axis=1)


__all__ = ["parse_cell_scale_factors", "zs_transform"]
