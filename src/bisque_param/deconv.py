# src/bisque_param/deconv.py
"""
Decomposition invoker
deconvolution, parse_predictions, DeconvolutionInfo
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Union

import pandas as pd

from .bisque import reference_based_decomposition
from .errors import DimensionMismatch
from .params import BisqueParameters, parameter_metadata, validate_base

# decomposer(bulk_container, sc_data, *, use_overlap, batch_variable, cell_type_variable)
Decomposer = Callable[..., Any]


@dataclass
class DeconvolutionInfo:
    """Verbose result: proportions plus the raw decomposition output and run metadata."""
    predictions: pd.DataFrame
    result_info: Any
    metadata: Dict[str, Any] = field(default_factory=dict)


def parse_predictions(raw: pd.DataFrame, sample_ids: Sequence[str]) -> pd.DataFrame:
    """
    Orient a raw proportions table to samples x cell types.

    The sample axis is found by label, not by shape: whichever axis carries
    bulk sample ids becomes the index. Rows follow bulk sample order and cell
    types are sorted.
    """
    sample_ids = [str(s) for s in sample_ids]
    known = set(sample_ids)
    df = raw.copy()
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)

    if set(df.columns) <= known and not set(df.index) <= known:
        df = df.T
    elif not set(df.index) <= known:
        raise DimensionMismatch(
            "Decomposition output has no axis labelled by bulk sample ids "
            f"(index {list(df.index)[:5]}, columns {list(df.columns)[:5]})."
        )

    order = [s for s in sample_ids if s in set(df.index)]
    df = df.loc[order, sorted(df.columns)]
    df.index.name = "sample_id"
    df.columns.name = "cell_type"
    return df.astype(float)


def deconvolution(
    params: BisqueParameters,
    decomposer: Optional[Decomposer] = None,
) -> Union[pd.DataFrame, DeconvolutionInfo]:
    """
    Run the decomposition routine on a parameter object.

    Returns
    -------
    DataFrame
        Samples x cell types proportions, when `params.return_info` is False.
    DeconvolutionInfo
        Predictions, the raw routine output and a metadata bundle otherwise.
    """
    validate_base(params.base)
    decomposer = decomposer or reference_based_decomposition

    print(f"[DECONV] Running decomposition (use_overlap={params.use_overlap}) on "
          f"{params.bulk_container.n_obs} bulk samples")
    result = decomposer(
        params.bulk_container,
        params.sc_data,
        use_overlap=params.use_overlap,
        batch_variable=params.batch_variable,
        cell_type_variable=params.cell_type_variable,
    )

    raw = result if isinstance(result, pd.DataFrame) else getattr(result, "bulk_props", None)
    if not isinstance(raw, pd.DataFrame):
        raise DimensionMismatch(
            f"Decomposer returned {type(result).__name__}; expected a DataFrame or an object with .bulk_props"
        )
    predictions = parse_predictions(raw, params.bulk_container.obs_names)
    print(f"[DECONV] Proportions for {predictions.shape[0]} samples x {predictions.shape[1]} cell types")

    if not params.return_info:
        return predictions

    metadata = {
        "parameters": parameter_metadata(params.base),
        "batches": params.batches.summary(),
        "bulk_container": params.bulk_container,
        "sc_data": params.sc_data,
    }
    return DeconvolutionInfo(predictions=predictions, result_info=result, metadata=metadata)


__all__ = ["DeconvolutionInfo", "Decomposer", "deconvolution", "parse_predictions"]
