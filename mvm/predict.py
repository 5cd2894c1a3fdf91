import logging

import numpy as np
import pandas as pd
import torch
import torch.nn as nn

from .config import BaseConfig, ScoringConfig
from .errors import DuplicateSampleError
from .model import expand_samples
from .views import features_to_views

logger = logging.getLogger(__name__)


class FactorTable(nn.Module):
    """Dense latent factor lookup over real and indicator feature ids"""

    def __init__(self, weights):
        super().__init__()
        weights = torch.as_tensor(weights, dtype=torch.float64)
        self.embedding = nn.Embedding.from_pretrained(weights, freeze=True)
        self.k = weights.shape[1]

    def forward(self, x):
        return self.embedding(x)


class MultiViewInteraction(nn.Module):
    """Bias + cross-view pairwise interaction over per-view factor sums"""

    def __init__(self, model, num_features, interaction='cross_view'):
        super().__init__()
        self.num_views = model.num_views
        self.bias = model.bias
        self.classification = model.classification
        self.interaction = interaction

        # Features missing from the factor table must not contribute
        table = model.factor_table()
        size = num_features + model.num_views
        weights = np.zeros((size, model.k))
        present = np.zeros(size, dtype=bool)
        ids = table[BaseConfig.FEATURE_ID_COL].to_numpy(dtype=np.int64)
        keep = ids < size
        weights[ids[keep]] = np.stack(table[BaseConfig.FACTORS_COL].to_numpy())[keep]
        present[ids[keep]] = True

        self.factors = FactorTable(weights)
        self.register_buffer('present', torch.as_tensor(present))

    def forward(self, rows, features, views, values, batch_size):
        # rows/features/views/values: one entry per (sample, active feature)
        keep = self.present[features]
        contrib = self.factors(features[keep]) * values[keep].unsqueeze(-1)
        rows, views = rows[keep], views[keep]

        sums = torch.zeros(batch_size, self.num_views, self.factors.k, dtype=torch.float64)
        sums.index_put_((rows, views), contrib, accumulate=True)
        total = sums.sum(dim=1)
        if self.interaction == 'all_pairs':
            squares = torch.zeros_like(sums)
            squares.index_put_((rows, views), contrib * contrib, accumulate=True)
            self_terms = squares.sum(dim=1)
        else:
            self_terms = (sums * sums).sum(dim=1)

        raw = self.bias + 0.5 * (total * total - self_terms).sum(dim=1)
        if self.classification:
            return torch.sigmoid(raw)
        return raw

    def matched(self, rows, features, batch_size):
        """Samples with at least one feature in the factor table"""
        hits = torch.zeros(batch_size, dtype=torch.bool)
        hits[rows[self.present[features]]] = True
        return hits


class MVMPredictor:
    """Single-node batch scorer for models whose factor table fits in memory"""

    def __init__(self, model, num_features=None, config=None):
        self.config = config or ScoringConfig()
        self.model = model
        self.num_features = model.num_features if num_features is None else int(num_features)
        self.network = MultiViewInteraction(model, self.num_features, self.config.interaction)
        self.network.eval()
        logger.info(f"Factor matrix: {self.num_features + model.num_views} x {model.k}, "
                    f"{int(self.network.present.sum())} features with factors")

    def preprocess_input(self, df):
        """Turn a sample DataFrame into flat index tensors"""
        expanded = expand_samples(df, self.num_features, self.model.num_views)
        sample_ids = df[BaseConfig.SAMPLE_ID_COL].to_numpy(dtype=np.int64)
        rows = pd.Index(sample_ids).get_indexer(expanded[BaseConfig.SAMPLE_ID_COL])
        feature_ids = expanded[BaseConfig.FEATURE_ID_COL].to_numpy()
        views = features_to_views(feature_ids, self.model.views, self.num_features)
        return {
            'rows': torch.as_tensor(rows, dtype=torch.long),
            'features': torch.as_tensor(feature_ids, dtype=torch.long),
            'views': torch.as_tensor(views, dtype=torch.long),
            'values': torch.as_tensor(expanded['value'].to_numpy(), dtype=torch.float64),
        }

    def predict(self, df):
        """
        Score one batch of samples.
        Returns: DataFrame with sampleId, score (samples with no known feature are dropped)
        """
        inputs = self.preprocess_input(df)
        with torch.no_grad():
            scores = self.network(batch_size=len(df), **inputs)
            matched = self.network.matched(inputs['rows'], inputs['features'], len(df))

        matched = matched.numpy()
        return pd.DataFrame({
            BaseConfig.SAMPLE_ID_COL: df[BaseConfig.SAMPLE_ID_COL].to_numpy(dtype=np.int64)[matched],
            BaseConfig.SCORE_COL: scores.numpy()[matched],
        })

    def predict_batch(self, df, batch_size=4096):
        """Score a large DataFrame in chunks of batch_size samples"""
        duplicated = df[BaseConfig.SAMPLE_ID_COL].duplicated()
        if duplicated.any():
            raise DuplicateSampleError(
                f"Sample id {df[BaseConfig.SAMPLE_ID_COL][duplicated].iloc[0]} appears more than once")
        results = [self.predict(df.iloc[start:start + batch_size])
                   for start in range(0, len(df), batch_size)]
        if not results:
            return pd.DataFrame({BaseConfig.SAMPLE_ID_COL: np.empty(0, dtype=np.int64),
                                 BaseConfig.SCORE_COL: np.empty(0, dtype=np.float64)})
        return pd.concat(results, ignore_index=True)
