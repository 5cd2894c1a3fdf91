import numpy as np
import pandas as pd
import pytest

from mvm.dataflow import object_column
from mvm.model import MVMModel
from mvm.synthetic import generate_model, generate_samples

# Two views: features 0-2 and 3-4; indicator ids 5 and 6
SCENARIO_VIEWS = [0, 3]
SCENARIO_NUM_FEATURES = 5
SCENARIO_FACTORS = {
    0: [1.0, 0.0],
    1: [0.0, 1.0],
    3: [2.0, 0.0],
    5: [0.0, 0.0],
    6: [0.0, 0.0],
}


def make_samples(rows, labels=None):
    """rows: {sampleId: {featureId: value}}"""
    sample_ids = list(rows.keys())
    df = pd.DataFrame({'sampleId': np.array(sample_ids, dtype=np.int64)})
    df['indices'] = object_column([np.array(list(rows[s].keys()), dtype=np.int64) for s in sample_ids])
    df['values'] = object_column([np.array(list(rows[s].values()), dtype=np.float64) for s in sample_ids])
    if labels is not None:
        df['label'] = [float(labels[s]) for s in sample_ids]
    return df


def scores_by_id(predictions):
    return dict(zip(predictions['sampleId'].tolist(), predictions['score'].tolist()))


@pytest.fixture
def scenario_model():
    return MVMModel.from_factors(2, 0.5, SCENARIO_VIEWS, False, SCENARIO_FACTORS, num_partitions=2)


@pytest.fixture
def scenario_classifier():
    return MVMModel.from_factors(2, 0.5, SCENARIO_VIEWS, True, SCENARIO_FACTORS, num_partitions=2)


@pytest.fixture
def regression_model():
    return generate_model(40, [0, 10, 25], k=3, bias=0.2, scale=0.5, seed=7, num_partitions=3)


@pytest.fixture
def classification_model():
    return generate_model(40, [0, 10, 25], k=3, classification=True, bias=-0.1,
                          scale=0.8, seed=11, num_partitions=3)


@pytest.fixture
def regression_samples(regression_model):
    return generate_samples(60, 40, nnz=6, model=regression_model, seed=3)


@pytest.fixture
def classification_samples(classification_model):
    return generate_samples(200, 40, nnz=6, model=classification_model, seed=5)
