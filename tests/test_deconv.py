import numpy as np
import pandas as pd
import pytest

from bisque_param.bisque import BisqueResult
from bisque_param.deconv import DeconvolutionInfo, deconvolution, parse_predictions
from bisque_param.errors import DimensionMismatch
from bisque_param.params import bisque_param


def test_default_returns_proportions(bulk_container, sc_data):
    params = bisque_param(bulk_container=bulk_container, sc_data=sc_data)
    props = deconvolution(params)
    assert isinstance(props, pd.DataFrame)
    assert list(props.index) == list(bulk_container.obs_names)
    assert list(props.columns) == ["Astro", "Excit", "Inhib"]
    np.testing.assert_allclose(props.sum(axis=1).to_numpy(), 1.0)


def test_return_info(bulk_container, sc_data):
    params = bisque_param(bulk_container=bulk_container, sc_data=sc_data, use_overlap=True, return_info=True)
    info = deconvolution(params)
    assert isinstance(info, DeconvolutionInfo)
    assert isinstance(info.result_info, BisqueResult)
    assert list(info.predictions.index) == ["A_s1", "A_s2"]
    assert set(info.metadata) == {"parameters", "batches", "bulk_container", "sc_data"}
    assert info.metadata["batches"]["id_overlap"] == ["B", "C"]
    assert info.metadata["bulk_container"] is params.bulk_container


def test_custom_decomposer_receives_containers(bulk_container, sc_data):
    seen = {}

    def flat(bulk, sc, *, use_overlap, batch_variable, cell_type_variable):
        seen.update(use_overlap=use_overlap, batch_variable=batch_variable, n_cells=sc.n_obs)
        # cell types x samples, like the default routine
        return pd.DataFrame(1 / 3, index=["Inhib", "Astro", "Excit"], columns=bulk.obs_names)

    params = bisque_param(bulk_container=bulk_container, sc_data=sc_data)
    props = deconvolution(params, decomposer=flat)
    assert seen == {"use_overlap": False, "batch_variable": "batch.id", "n_cells": sc_data.n_obs}
    assert props.shape == (bulk_container.n_obs, 3)
    assert list(props.columns) == ["Astro", "Excit", "Inhib"]


def test_decomposer_must_return_table(bulk_container, sc_data):
    params = bisque_param(bulk_container=bulk_container, sc_data=sc_data)
    with pytest.raises(DimensionMismatch):
        deconvolution(params, decomposer=lambda *a, **k: [0.5, 0.5])


def test_parse_predictions_orients_by_label():
    raw = pd.DataFrame([[0.2, 0.8], [0.5, 0.5]], index=["T", "B"], columns=["s2", "s1"])
    out = parse_predictions(raw, ["s1", "s2"])
    assert list(out.index) == ["s1", "s2"]
    assert list(out.columns) == ["B", "T"]
    assert out.loc["s1", "T"] == pytest.approx(0.8)
    assert out.index.name == "sample_id"


def test_parse_predictions_square_table():
    # same shape both ways; labels decide
    raw = pd.DataFrame([[0.1, 0.9], [0.6, 0.4]], index=["s1", "s2"], columns=["X", "Y"])
    out = parse_predictions(raw, ["s1", "s2"])
    assert out.loc["s2", "X"] == pytest.approx(0.6)


def test_parse_predictions_unknown_labels():
    raw = pd.DataFrame([[1.0]], index=["T"], columns=["nope"])
    with pytest.raises(DimensionMismatch):
        parse_predictions(raw, ["s1"])


def test_single_bulk_sample_cannot_be_decomposed(bulk_expression, sc_data):
    # sample labelled like a single-cell batch so the placeholder batch id overlaps
    single = bulk_expression[["B_s1"]].rename(columns={"B_s1": "B"})
    params = bisque_param(bulk_expression=single, sc_data=sc_data,
                          bulk_expression_independent=bulk_expression[["A_s1"]])
    assert list(params.bulk_container.obs_names) == ["B", "B_rep1"]
    assert params.bulk_expression.shape[1] == 1
    # the copy carries no between-sample variance
    with pytest.raises(DimensionMismatch, match="Zero genes"):
        deconvolution(params)
