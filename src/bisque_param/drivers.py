from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional


def _to_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in {"1", "t", "true", "yes", "y"}


def _blank(v: Optional[str]) -> Optional[str]:
    return None if v is None or str(v).strip().lower() in {"", "none"} else str(v)


def run_deconvolution(
    *,
    bulk: str,
    sc_h5ad: str,
    outdir: str,
    bulk_gene_col: Optional[str] = None,
    bulk_metadata: Optional[str] = None,
    sample_col: Optional[str] = "sample_id",
    bulk_independent: Optional[str] = None,
    reference: Optional[str] = None,
    cell_scale_factors: Optional[str] = None,
    assay_name: str = "counts",
    batch_variable: str = "batch.id",
    cell_type_variable: str = "celltype",
    use_overlap: Any = False,
    return_info: Any = False,
) -> str:
    """
    Load inputs from disk, build the parameter object, decompose, write results.

    Returns
    -------
    str
        Path to bisque_bulk_proportions.tsv (cell types x samples).
    """
    # import late
    from .adata_utils import read_single_cell
    from .deconv import DeconvolutionInfo, deconvolution
    from .io import (read_bulk_counts, read_bulk_expression_set, read_cell_scale_factors,
                     read_reference_expression)
    from .params import bisque_param, parameter_metadata

    out = Path(outdir)
    out.mkdir(parents=True, exist_ok=True)
    print(f"[RUN] Bulk:        {bulk}")
    print(f"[RUN] Single-cell: {sc_h5ad}")
    print(f"[RUN] Writing to:  {out}")

    counts, eset = read_bulk_expression_set(
        bulk, _blank(bulk_metadata), gene_col=_blank(bulk_gene_col), sample_col=_blank(sample_col)
    )
    sc_data = read_single_cell(sc_h5ad)
    independent = read_bulk_counts(bulk_independent) if _blank(bulk_independent) else None
    ref = read_reference_expression(reference) if _blank(reference) else None
    factors = read_cell_scale_factors(cell_scale_factors) if _blank(cell_scale_factors) else None

    params = bisque_param(
        bulk_expression=counts,
        bulk_container=eset,
        bulk_expression_independent=independent,
        reference_expression=ref,
        cell_scale_factors=factors,
        sc_data=sc_data,
        assay_name=assay_name,
        batch_variable=batch_variable,
        cell_type_variable=cell_type_variable,
        use_overlap=_to_bool(use_overlap),
        return_info=_to_bool(return_info),
    )
    result = deconvolution(params)
    predictions = result.predictions if isinstance(result, DeconvolutionInfo) else result

    # downstream analysis expects cell types as rows
    props_tsv = out / "bisque_bulk_proportions.tsv"
    table = predictions.T
    table.index.name = "cell_type"
    table.to_csv(props_tsv, sep="\t")

    files: Dict[str, str] = {"bisque_bulk_proportions": str(props_tsv)}
    if isinstance(result, DeconvolutionInfo):
        raw = result.result_info
        sc_props = getattr(raw, "sc_props", None)
        rnorm = getattr(raw, "rnorm", None)
        if sc_props is not None:
            files["bisque_sc_proportions"] = str(out / "bisque_sc_proportions.tsv")
            sc_props.to_csv(files["bisque_sc_proportions"], sep="\t")
        if rnorm is not None:
            files["bisque_rnorm"] = str(out / "bisque_rnorm.tsv")
            rnorm.to_csv(files["bisque_rnorm"], sep="\t")

    meta = parameter_metadata(params.base)
    for k in ("markers_bulk_expression", "markers_reference_expression"):
        meta.pop(k)
    summary = {
        "out_dir": str(out.resolve()),
        "files": files,
        "shape_bisque_bulk_proportions": list(map(int, table.shape)),
        "index_is_cell_type": True,
        "use_overlap": params.use_overlap,
        "batch_variable": params.batch_variable,
        "cell_type_variable": params.cell_type_variable,
        "parameters": meta,
        "batches": params.batches.summary(),
    }
    with open(out / "bisque_python_summary.json", "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)

    print(f"[RUN] Wrote {props_tsv}")
    return str(props_tsv)
