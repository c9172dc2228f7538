import dataclasses

import pandas as pd
import pytest

from bisque_param.errors import DimensionMismatch, EmptyOverlap, InsufficientIndependentData
from bisque_param.params import BaseParameters, bisque_param, parameter_metadata, validate_base


def test_build_from_container(bulk_container, sc_data):
    p = bisque_param(bulk_container=bulk_container, sc_data=sc_data)
    assert p.batches.id_overlap == ("B", "C")
    assert p.batches.id_only_bulk == ("A",)
    assert p.batches.id_only_sc == ("D",)
    assert list(p.bulk_expression_independent.columns) == ["A_s1", "A_s2"]
    assert set(p.bulk_expression.columns).isdisjoint(p.bulk_expression_independent.columns)
    assert p.reference_expression.shape[1] == 3
    assert (p.cell_scale_factors == 1.0).all()
    assert p.return_info is False
    validate_base(p.base)


def test_parameters_are_frozen(bulk_container, sc_data):
    p = bisque_param(bulk_container=bulk_container, sc_data=sc_data)
    with pytest.raises(dataclasses.FrozenInstanceError):
        p.use_overlap = True


def test_supplied_reference_kept(bulk_container, sc_data):
    ref = pd.DataFrame(1.0, index=list(sc_data.var_names[:10]), columns=["Astro", "Excit", "Inhib"])
    p = bisque_param(bulk_container=bulk_container, sc_data=sc_data, reference_expression=ref)
    assert p.reference_expression is ref


def test_all_bulk_batches_overlap(example, sc_data):
    bulk = example["bulk_container"]
    bulk = bulk[(bulk.obs["batch.id"] != "A").values].copy()
    with pytest.raises(InsufficientIndependentData):
        bisque_param(bulk_container=bulk, sc_data=sc_data)


def test_no_batch_overlap(bulk_container, sc_data):
    sc = sc_data.copy()
    sc.obs["batch.id"] = "Z"
    with pytest.raises(EmptyOverlap):
        bisque_param(bulk_container=bulk_container, sc_data=sc)


def test_matrix_only_bulk_needs_matching_labels(bulk_expression, sc_data):
    # placeholder batch ids are the sample labels, which never match "B"/"C"/"D"
    with pytest.raises(EmptyOverlap):
        bisque_param(bulk_expression=bulk_expression, sc_data=sc_data)


def test_validate_base_catches_shared_samples(bulk_container, sc_data):
    p = bisque_param(bulk_container=bulk_container, sc_data=sc_data)
    bad = BaseParameters(
        bulk_expression=p.bulk_expression,
        bulk_expression_independent=p.bulk_expression.iloc[:, :1],
        reference_expression=p.reference_expression,
        cell_scale_factors=p.cell_scale_factors,
    )
    with pytest.raises(DimensionMismatch, match="share samples"):
        validate_base(bad)


def test_validate_base_catches_scale_factor_mismatch(bulk_container, sc_data):
    p = bisque_param(bulk_container=bulk_container, sc_data=sc_data,
                     cell_scale_factors={"Astro": 1.0, "Excit": 2.0})
    with pytest.raises(DimensionMismatch):
        validate_base(p.base)


def test_metadata_counts(bulk_container, sc_data):
    p = bisque_param(bulk_container=bulk_container, sc_data=sc_data)
    meta = parameter_metadata(p.base)
    assert meta["number_cell_types_k"] == 3
    assert meta["unique_types"] == ["Astro", "Excit", "Inhib"]
    assert meta["bulk_samples"] == 4
    assert meta["independent_samples"] == 2
    assert meta["overlapping_markers"] == bulk_container.n_vars
    assert meta["cell_scale_factors"] == {"Astro": 1.0, "Excit": 1.0, "Inhib": 1.0}
