import anndata as ad
import numpy as np
import pandas as pd
import pytest

from bisque_param.batches import parse_batches, parse_bulk_expression_independent
from bisque_param.containers import expression_matrix
from bisque_param.errors import EmptyOverlap, InsufficientIndependentData, MissingAnnotationKey


def _bulk(batches):
    samples = [f"{b}_s{i}" for i, b in enumerate(batches)]
    obs = pd.DataFrame({"batch.id": list(batches)}, index=samples)
    X = np.arange(len(batches) * 3, dtype=float).reshape(len(batches), 3)
    return ad.AnnData(X=X, obs=obs, var=pd.DataFrame(index=["g1", "g2", "g3"]))


def test_partition_abc_vs_bcd():
    bulk = _bulk(["A", "A", "B", "B", "C", "C"])
    part = parse_batches("batch.id", bulk, ["B", "C", "D"])
    assert part.id_bulk == ("A", "B", "C")
    assert part.id_overlap == ("B", "C")
    assert part.id_only_bulk == ("A",)
    assert part.id_only_sc == ("D",)
    assert set(part.id_unique) == {"A", "B", "C", "D"}
    assert part.summary()["n_overlap"] == 2


def test_no_overlap_is_fatal():
    with pytest.raises(EmptyOverlap):
        parse_batches("batch.id", _bulk(["A", "B"]), ["X", "Y"])


def test_missing_bulk_batch_key():
    with pytest.raises(MissingAnnotationKey):
        parse_batches("donor", _bulk(["A", "B"]), ["A"])


def test_independent_derived_from_only_bulk_batches():
    bulk = _bulk(["A", "A", "B", "C"])
    matrix = expression_matrix(bulk)
    split = parse_bulk_expression_independent(("A",), matrix, bulk, "batch.id")
    assert list(split.bulk_expression_independent.columns) == ["A_s0", "A_s1"]
    assert list(split.bulk_expression.columns) == ["B_s2", "C_s3"]
    assert set(split.bulk_expression.columns).isdisjoint(split.bulk_expression_independent.columns)
    # input left untouched
    assert matrix.shape[1] == 4


def test_no_only_bulk_batches_and_nothing_supplied():
    bulk = _bulk(["B", "C"])
    with pytest.raises(InsufficientIndependentData):
        parse_bulk_expression_independent((), expression_matrix(bulk), bulk, "batch.id")


def test_supplied_independent_is_removed_from_bulk():
    bulk = _bulk(["B", "C", "C"])
    matrix = expression_matrix(bulk)
    independent = matrix[["C_s2"]]
    split = parse_bulk_expression_independent((), matrix, bulk, "batch.id", independent)
    assert split.bulk_expression_independent is independent
    assert list(split.bulk_expression.columns) == ["B_s0", "C_s1"]
