"""
Multi-view factorization model: scoring and evaluation.

Scoring ties a partitioned collection of sparse samples to the partitioned
factor table:

    samples -> (featureId, sampleId, value) rows, plus one indicator row per view
            -> join factor table on featureId
            -> per-sample intervals (views tagged by feature id)
            -> reduce intervals by sampleId
            -> score (bias + cross-view interaction, optional sigmoid)
"""
import logging
from dataclasses import dataclass
from functools import cached_property

import numpy as np
import pandas as pd

from .config import BaseConfig, EvaluationConfig, ScoringConfig
from .dataflow import PartitionedFrame, object_column
from .errors import DuplicateSampleError, FeatureCountError, FeatureIndexError, UnmatchedSampleError
from .interval import forward_intervals, predict_intervals, reduce_interval
from .metrics import auc, rmse
from .views import features_to_views, validate_views

logger = logging.getLogger(__name__)

SID = BaseConfig.SAMPLE_ID_COL
FID = BaseConfig.FEATURE_ID_COL
INTERVAL_COL = 'interval'


def as_frame(samples, config):
    """
    Sample collection partitioned by sampleId.

    DataFrames are split by sampleId hash; frames not already partitioned by
    sampleId are shuffled. Equal sampleIds then share a partition, which is
    where expand_samples rejects duplicates.
    """
    if isinstance(samples, PartitionedFrame):
        if samples.partitioned_by == SID:
            return samples
        return samples.shuffle(SID, config.num_partitions, name='samples')
    return PartitionedFrame.from_pandas(
        samples, num_partitions=config.num_partitions, key=SID,
        num_workers=config.num_workers, show_progress=config.show_progress,
        name='samples'
    )


def expand_samples(df, num_features, num_views):
    """
    Explode sparse samples into (featureId, sampleId, value) rows.

    Explicit zeros are dropped and each sample gets one indicator row with
    value 1.0 per view. Raises DuplicateSampleError when a sampleId repeats within the partition.
    """
    sample_ids = df[SID].to_numpy(dtype=np.int64)
    duplicated = pd.Index(sample_ids).duplicated()
    if duplicated.any():
        raise DuplicateSampleError(f"Sample id {sample_ids[duplicated][0]} appears more than once")
    indices = [np.asarray(ix, dtype=np.int64) for ix in df[BaseConfig.INDICES_COL]]
    values = [np.asarray(vs, dtype=np.float64) for vs in df[BaseConfig.VALUES_COL]]
    for sid, ix, vs in zip(sample_ids, indices, values):
        if len(ix) != len(vs):
            raise ValueError(f"Sample {sid} has {len(ix)} indices but {len(vs)} values")

    lengths = np.array([len(ix) for ix in indices], dtype=np.int64)
    feature_ids = np.concatenate(indices) if indices else np.empty(0, dtype=np.int64)
    feature_values = np.concatenate(values) if values else np.empty(0, dtype=np.float64)
    row_samples = np.repeat(sample_ids, lengths)

    if feature_ids.size and (feature_ids.min() < 0 or feature_ids.max() >= num_features):
        bad = feature_ids[(feature_ids < 0) | (feature_ids >= num_features)][0]
        raise FeatureIndexError(f"Feature id {bad} out of range for {num_features} features")

    active = feature_values != 0.0
    n = len(sample_ids)
    return pd.DataFrame({
        FID: np.concatenate([feature_ids[active], np.tile(num_features + np.arange(num_views), n)]),
        SID: np.concatenate([row_samples[active], np.repeat(sample_ids, num_views)]),
        'value': np.concatenate([feature_values[active], np.ones(n * num_views)]),
    })


@dataclass(frozen=True)
class MVMModel:
    """
    Immutable multi-view factorization model.

    Args:
        k: latent factor dimension
        bias: global bias
        views: view boundaries, strictly increasing, starting at 0
        classification: apply the logistic link to scores
        factors: PartitionedFrame with columns featureId (int64) and
            factors (length-k float vectors), indicator ids included
    """
    k: int
    bias: float
    views: tuple
    classification: bool
    factors: PartitionedFrame

    def __post_init__(self):
        if int(self.k) < 1:
            raise ValueError(f"k must be positive, got {self.k}")
        object.__setattr__(self, 'k', int(self.k))
        object.__setattr__(self, 'bias', float(self.bias))
        object.__setattr__(self, 'views', validate_views(self.views))
        object.__setattr__(self, 'classification', bool(self.classification))

    @classmethod
    def from_factors(cls, k, bias, views, classification, factors, num_partitions=1):
        """Build a model from a {featureId: vector} mapping or a factor DataFrame"""
        if isinstance(factors, pd.DataFrame):
            df = factors[[FID, BaseConfig.FACTORS_COL]].copy()
        else:
            df = pd.DataFrame({FID: list(factors.keys())})
            df[BaseConfig.FACTORS_COL] = object_column(
                [np.asarray(v, dtype=np.float64) for v in factors.values()])
        df[FID] = df[FID].astype(np.int64)
        if df[FID].duplicated().any():
            raise ValueError("Factor table has duplicate feature ids")
        bad = [fid for fid, w in zip(df[FID], df[BaseConfig.FACTORS_COL]) if len(w) != k]
        if bad:
            raise ValueError(f"Factor vectors must have length {k}; feature {bad[0]} does not")

        frame = PartitionedFrame.from_pandas(df, num_partitions=num_partitions, key=FID, name='factors')
        return cls(k, bias, views, classification, frame)

    @property
    def num_views(self):
        return len(self.views)

    @cached_property
    def num_features(self):
        """
        Real feature count implied by the factor table: indicator ids are the top num_views ids.

        Raises FeatureCountError when the top num_views ids are not all
        present, since the largest real feature would otherwise be taken
        for an indicator. Pass num_features explicitly for such tables.
        """
        ids = np.concatenate([p[FID].to_numpy(dtype=np.int64) for p in self.factors.partitions()])
        num_features = int(ids.max()) + 1 - self.num_views if ids.size else -self.num_views
        missing = np.setdiff1d(num_features + np.arange(self.num_views), ids)
        if num_features < 0 or missing.size:
            raise FeatureCountError(
                f"Cannot infer num_features: factor table lacks indicator ids "
                f"{missing.tolist()}; pass num_features explicitly"
            )
        return num_features

    def factor_table(self):
        """Collected factor table as a pandas DataFrame"""
        return self.factors.to_pandas()

    def predict(self, samples, num_features=None, config=None):
        """
        Score sparse samples.

        Args:
            samples: DataFrame or PartitionedFrame with sampleId, indices, values
            num_features: number of real features; inferred from the factor
                table when omitted
            config: ScoringConfig

        Returns:
            PartitionedFrame of (sampleId, score)

        Raises DuplicateSampleError (when partitions are computed) if two
        sample rows share a sampleId.
        """
        config = config or ScoringConfig()
        num_features = self.num_features if num_features is None else int(num_features)
        k, num_views, views = self.k, self.num_views, self.views
        bias, classification = self.bias, self.classification
        interaction = config.interaction

        def accumulate(df):
            view_ids = features_to_views(df[FID].to_numpy(), views, num_features)
            weights = (np.stack(df[BaseConfig.FACTORS_COL].to_numpy())
                       if len(df) else np.empty((0, k)))
            sample_ids, intervals = forward_intervals(
                k, num_views, df[SID].to_numpy(), view_ids, df['value'].to_numpy(), weights)
            out = pd.DataFrame({SID: sample_ids})
            out[INTERVAL_COL] = object_column(list(intervals))
            return out

        def finalize(df):
            if df.empty:
                return pd.DataFrame({SID: np.empty(0, dtype=np.int64),
                                     BaseConfig.SCORE_COL: np.empty(0, dtype=np.float64)})
            scores = predict_intervals(k, np.stack(df[INTERVAL_COL].to_numpy()), bias,
                                       interaction=interaction, classification=classification)
            return pd.DataFrame({SID: df[SID].to_numpy(dtype=np.int64),
                                 BaseConfig.SCORE_COL: scores})

        frame = as_frame(samples, config)
        expanded = frame.map_partitions(
            lambda df: expand_samples(df, num_features, num_views), name='expand')
        joined = expanded.join(self.factors, on=FID, num_partitions=config.num_partitions)
        intervals = joined.map_partitions(accumulate, name='accumulate')
        reduced = intervals.reduce_by_key(SID, INTERVAL_COL, reduce_interval,
                                          num_partitions=config.num_partitions)
        return reduced.map_partitions(finalize, name='predictions')

    def evaluate(self, samples, num_features=None, on_unmatched=None, config=None):
        """
        Score labeled samples and compute AUC (classification) or RMSE (regression).

        Returns:
            dict with metric name, loss, num_samples and num_unmatched
        """
        config = config or ScoringConfig()
        policy = EvaluationConfig(on_unmatched).on_unmatched
        label_col = BaseConfig.LABEL_COL

        frame = as_frame(samples, config)
        features = frame.map_partitions(
            lambda df: df[[SID, BaseConfig.INDICES_COL, BaseConfig.VALUES_COL]],
            name='features', preserves_partitioning=True)
        labels = frame.map_partitions(
            lambda df: df[[SID, label_col]].astype({SID: np.int64}),
            name='labels', preserves_partitioning=True)
        predictions = self.predict(features, num_features=num_features, config=config)

        score_and_labels = labels.join(predictions, on=SID, name='score-and-labels')
        score_and_labels.persist()
        try:
            pairs = score_and_labels.to_pandas()
            num_unmatched = labels.count() - len(pairs)
            if num_unmatched:
                if policy == 'raise':
                    raise UnmatchedSampleError(f"{num_unmatched} labeled samples have no prediction")
                logger.warning(f"Dropping {num_unmatched} labeled samples with no prediction from the loss")

            scores = pairs[BaseConfig.SCORE_COL].to_numpy()
            truth = pairs[label_col].to_numpy()
            if self.classification:
                metric, value = 'auc', auc(scores, truth)
            else:
                metric, value = 'rmse', rmse(scores, truth)
        finally:
            score_and_labels.unpersist()

        logger.info(f"{metric.upper()}: {value:.6f} over {len(pairs)} samples")
        return {
            'metric': metric,
            'loss': value,
            'num_samples': len(pairs),
            'num_unmatched': int(num_unmatched),
        }

    def loss(self, samples, num_features=None, on_unmatched=None, config=None):
        """AUC for classification models, RMSE for regression models"""
        return self.evaluate(samples, num_features=num_features,
                             on_unmatched=on_unmatched, config=config)['loss']

    def save(self, path, overwrite=False):
        from .persistence import save_model
        save_model(self, path, overwrite=overwrite)

    @classmethod
    def load(cls, path):
        from .persistence import load_model
        return load_model(path)
