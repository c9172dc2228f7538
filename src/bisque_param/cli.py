# src/bisque_param/cli.py
from __future__ import annotations

import argparse
import sys

from .config import USER_DEFAULTS, resolve_paths, timestamped_run_root


def _D(key: str, fallback):
    """pull from USER_DEFAULTS with a safe fallback"""
    return USER_DEFAULTS.get(key, fallback)


def _parse_args(argv=None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        "bisque-param",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        description="Build a Bisque parameter set from bulk + single-cell data and predict cell-type proportions.",
    )

    # ---------- Inputs ----------
    ap.add_argument("--bulk",             default=_D("bulk", ""), help="bulk counts CSV/TSV (genes x samples)")
    ap.add_argument("--bulk_gene_col",    default=_D("bulk_gene_col", ""))
    ap.add_argument("--bulk_metadata",    default=_D("bulk_metadata", ""),
                    help="per-sample table holding the batch column")
    ap.add_argument("--sample_col",       default=_D("sample_col", "sample_id"))
    ap.add_argument("--bulk_independent", default=_D("bulk_independent", ""),
                    help="optional counts of bulk samples without single-cell batches")
    ap.add_argument("--sc_h5ad",          default=_D("sc_h5ad", ""), help=".h5ad file or folder")
    ap.add_argument("--reference",        default=_D("reference", ""),
                    help="optional signature matrix (genes x cell types)")
    ap.add_argument("--cell_scale_factors", default=_D("cell_scale_factors", ""))

    # ---------- Annotation keys ----------
    ap.add_argument("--assay_name",         default=_D("assay_name", "counts"))
    ap.add_argument("--batch_variable",     default=_D("batch_variable", "batch.id"))
    ap.add_argument("--cell_type_variable", default=_D("cell_type_variable", "celltype"))

    # ---------- Flags ----------
    ap.add_argument("--use_overlap", action="store_true", default=_D("use_overlap", False))
    ap.add_argument("--return_info", action="store_true", default=_D("return_info", False),
                    help="also write single-cell proportions and residuals")

    # ---------- Outputs ----------
    ap.add_argument("--outdir", default=_D("outdir", ""))

    return ap.parse_args(argv)


def main(argv=None) -> None:
    a = _parse_args(argv)
    paths = resolve_paths(a)

    if not paths["bulk"]:
        raise SystemExit("Bulk file required (--bulk).")
    if not paths["sc_h5ad"]:
        raise SystemExit("Single-cell reference required (--sc_h5ad).")
    outdir = paths["outdir"] or timestamped_run_root()

    from .drivers import run_deconvolution  # import late
    from .errors import DeconvolutionError

    try:
        run_deconvolution(
            bulk=paths["bulk"],
            sc_h5ad=paths["sc_h5ad"],
            outdir=outdir,
            bulk_gene_col=a.bulk_gene_col,
            bulk_metadata=paths["bulk_metadata"],
            sample_col=a.sample_col,
            bulk_independent=paths["bulk_independent"],
            reference=paths["reference"],
            cell_scale_factors=paths["cell_scale_factors"],
            assay_name=a.assay_name,
            batch_variable=a.batch_variable,
            cell_type_variable=a.cell_type_variable,
            use_overlap=a.use_overlap,
            return_info=a.return_info,
        )
    except DeconvolutionError as e:
        raise SystemExit(f"[CLI] {type(e).__name__}: {e}")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(130)
