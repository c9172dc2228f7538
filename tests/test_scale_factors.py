import numpy as np
import pandas as pd
import pytest

from bisque_param.errors import DimensionMismatch
from bisque_param.scale_factors import parse_cell_scale_factors, zs_transform

REF = pd.DataFrame({"Neuron": [1.0, 2.0], "Astro": [3.0, 4.0]}, index=["g1", "g2"])


def test_default_factors_are_ones_per_type():
    s = parse_cell_scale_factors(REF)
    assert list(s.index) == ["Astro", "Neuron"]
    assert (s == 1.0).all()


def test_mapping_becomes_series():
    s = parse_cell_scale_factors(REF, {"Neuron": 2, "Astro": 0.5})
    assert s["Neuron"] == 2.0
    assert s.dtype == float


def test_zs_transform_scales_columns():
    s = pd.Series({"Astro": 2.0, "Neuron": 10.0})
    out = zs_transform(REF, s)
    np.testing.assert_allclose(out["Neuron"].to_numpy(), [10.0, 20.0])
    np.testing.assert_allclose(out["Astro"].to_numpy(), [6.0, 8.0])
    # reference itself untouched
    assert REF.loc["g1", "Neuron"] == 1.0


@pytest.mark.parametrize("factors", [
    {"Astro": 1.0},
    {"Astro": 1.0, "Neuron": 1.0, "Micro": 1.0},
    {"Astro": 1.0, "Oligo": 1.0},
])
def test_zs_transform_label_mismatch(factors):
    with pytest.raises(DimensionMismatch):
        zs_transform(REF, parse_cell_scale_factors(REF, factors))


@pytest.mark.parametrize("bad", [0.0, -1.0, float("nan")])
def test_zs_transform_rejects_non_positive(bad):
    with pytest.raises(DimensionMismatch, match="positive"):
        zs_transform(REF, pd.Series({"Astro": 1.0, "Neuron": bad}))
