import pytest

from bisque_param.datasets import example_data_bisque


@pytest.fixture
def example():
    # bulk batches A, B, C; single-cell batches B, C, D
    return example_data_bisque(n_genes=120, n_cells_per_type=20, seed=1)


@pytest.fixture
def bulk_container(example):
    return example["bulk_container"]


@pytest.fixture
def bulk_expression(example):
    return example["bulk_expression"]


@pytest.fixture
def sc_data(example):
    return example["sc_data"]
