import numpy as np
import pandas as pd

from .config import BaseConfig
from .dataflow import object_column
from .model import MVMModel


def generate_model(num_features, views, k=4, classification=False, bias=0.0,
                   scale=0.1, seed=42, num_partitions=1):
    """Random MVMModel with factors for every real and indicator feature"""
    rng = np.random.RandomState(seed)
    num_ids = num_features + len(views)
    factors = {fid: rng.normal(0.0, scale, size=k) for fid in range(num_ids)}
    return MVMModel.from_factors(k, bias, views, classification, factors,
                                 num_partitions=num_partitions)


def generate_samples(num_samples, num_features, nnz=5, model=None, noise=0.1, seed=42):
    """
    Generate sparse samples, optionally labeled by a model.

    Each sample has up to nnz distinct active features with values in
    [0.5, 1.5). With a regression model, labels are model scores plus
    gaussian noise; with a classification model, labels are drawn from the
    predicted click probability.
    """
    rng = np.random.RandomState(seed)
    nnz = min(nnz, num_features)

    indices, values = [], []
    for _ in range(num_samples):
        n = rng.randint(1, nnz + 1)
        indices.append(np.sort(rng.choice(num_features, size=n, replace=False)).astype(np.int64))
        values.append(rng.uniform(0.5, 1.5, size=n))

    df = pd.DataFrame({BaseConfig.SAMPLE_ID_COL: np.arange(num_samples, dtype=np.int64)})
    df[BaseConfig.INDICES_COL] = object_column(indices)
    df[BaseConfig.VALUES_COL] = object_column(values)

    if model is not None:
        preds = model.predict(df, num_features=num_features).to_pandas()
        scores = (df[[BaseConfig.SAMPLE_ID_COL]]
                  .merge(preds, on=BaseConfig.SAMPLE_ID_COL, how='left')[BaseConfig.SCORE_COL]
                  .fillna(model.bias).to_numpy())
        if model.classification:
            df[BaseConfig.LABEL_COL] = (rng.random_sample(num_samples) < scores).astype(np.float64)
        else:
            df[BaseConfig.LABEL_COL] = scores + rng.normal(0.0, noise, size=num_samples)
    return df
