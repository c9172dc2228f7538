import pytest

from bisque_param.containers import ExpressionSet
from bisque_param.io import (load_table_auto, read_bulk_counts, read_bulk_expression_set,
                             read_cell_scale_factors, read_reference_expression)


def test_bulk_counts_detects_gene_column(tmp_path):
    p = tmp_path / "bulk.csv"
    p.write_text(
        "note,ensembl_gene_id,S1,S2\n"
        "x,ENSG000001.5,1,2\n"
        "y,ENSG000002.1,3,4\n"
        "z,ENSG000001.7,9,9\n"
    )
    counts = read_bulk_counts(str(p))
    assert list(counts.columns) == ["S1", "S2"]
    assert list(counts.index) == ["ENSG000001", "ENSG000002"]
    assert counts.loc["ENSG000001", "S2"] == 2


def test_bulk_counts_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_bulk_counts(str(tmp_path / "absent.tsv"))


def test_bulk_with_metadata(tmp_path):
    bulk = tmp_path / "bulk.tsv"
    bulk.write_text("gene\tS1\tS2\ng1\t1\t2\ng2\t3\t4\n")
    meta = tmp_path / "meta.tsv"
    meta.write_text("sample_id\tbatch.id\nS2\tB\nS1\tA\n")
    counts, eset = read_bulk_expression_set(str(bulk), str(meta), sample_col="sample_id")
    assert isinstance(eset, ExpressionSet)
    assert eset.pheno.loc["S1", "batch.id"] == "A"
    assert eset.exprs is counts

    counts_only, none = read_bulk_expression_set(str(bulk))
    assert none is None
    assert counts_only.shape == (2, 2)


def test_reference_and_scale_factors(tmp_path):
    ref = tmp_path / "ref.tsv"
    ref.write_text("gene\tAstro\tNeuron\ng1\t1.5\t0\ng2\t0\t2\n")
    z = read_reference_expression(str(ref))
    assert list(z.columns) == ["Astro", "Neuron"]
    assert z.loc["g2", "Neuron"] == 2.0

    sf = tmp_path / "sf.csv"
    sf.write_text("cell_type,factor\nAstro,1.2\nNeuron,3\n")
    s = read_cell_scale_factors(str(sf))
    assert s.to_dict() == {"Astro": 1.2, "Neuron": 3.0}


def test_scale_factors_must_be_numeric(tmp_path):
    sf = tmp_path / "sf.csv"
    sf.write_text("cell_type,factor\nAstro,big\n")
    with pytest.raises(ValueError):
        read_cell_scale_factors(str(sf))


def test_sniffed_separator(tmp_path):
    p = tmp_path / "table.dat"
    p.write_text("a;b\n1;2\n")
    assert list(load_table_auto(str(p)).columns) == ["a", "b"]
