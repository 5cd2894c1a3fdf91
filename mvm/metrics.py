"""
Regression / classification metrics over (score, label) pairs
"""
import logging

import numpy as np
from sklearn.metrics import mean_squared_error, roc_auc_score

logger = logging.getLogger(__name__)


def _check(scores, labels):
    scores = np.asarray(scores, dtype=np.float64)
    labels = np.asarray(labels, dtype=np.float64)
    if len(scores) != len(labels):
        raise ValueError(f"Got {len(scores)} scores but {len(labels)} labels")
    if len(scores) == 0:
        raise ValueError("No (score, label) pairs to evaluate")
    return scores, labels


def _all_finite(scores, metric):
    if np.all(np.isfinite(scores)):
        return True
    logger.warning(f"{metric}: {int((~np.isfinite(scores)).sum())} non-finite scores, reporting NaN")
    return False


def rmse(scores, labels):
    """Root mean squared error"""
    scores, labels = _check(scores, labels)
    if not _all_finite(scores, 'RMSE'):
        return float('nan')
    return float(np.sqrt(mean_squared_error(labels, scores)))


def auc(scores, labels):
    """Area under the ROC curve; labels are 0/1"""
    scores, labels = _check(scores, labels)
    if not _all_finite(scores, 'AUC'):
        return float('nan')
    return float(roc_auc_score(labels, scores))
