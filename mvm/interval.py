"""
Interval math for multi-view factorization scoring.

An interval is the per-sample aggregation state of a multi-view model. It is
a float64 array of shape ``(2, num_views, k)``:

    interval[0, v, f] = sum_i w_i[f] * x_i          (S, the linear sum)
    interval[1, v, f] = sum_i (w_i[f] * x_i) ** 2   (Q, the square sum)

where ``i`` ranges over the active features of view ``v``. Intervals combine
by addition, so a sample's features can be folded in any order and on any
partition before the final score is computed. The cross-view interaction

    sum_{u < v} sum_f S_u[f] * S_v[f]

equals ``0.5 * sum_f ((sum_v S_v[f]) ** 2 - sum_v S_v[f] ** 2)``.
"""
import numpy as np

INTERACTIONS = ('cross_view', 'all_pairs')


def empty_interval(k, num_views):
    return np.zeros((2, num_views, k), dtype=np.float64)


def forward_interval(k, num_views, view_id, x, w):
    """Interval holding a single feature value x with latent factor w in view view_id"""
    w = np.asarray(w, dtype=np.float64)
    if w.shape != (k,):
        raise ValueError(f"Expected latent factor of length {k}, got shape {w.shape}")
    interval = empty_interval(k, num_views)
    contrib = w * x
    interval[0, view_id] = contrib
    interval[1, view_id] = contrib * contrib
    return interval


def reduce_interval(a, b):
    """Merge two partial intervals of the same sample"""
    return a + b


def _interaction(sums, square_sums, interaction):
    # sums/square_sums: (..., num_views, k)
    total = sums.sum(axis=-2)
    if interaction == 'cross_view':
        self_terms = (sums * sums).sum(axis=-2)
    elif interaction == 'all_pairs':
        self_terms = square_sums.sum(axis=-2)
    else:
        raise ValueError(f"Unknown interaction mode: {interaction}")
    return 0.5 * (total * total - self_terms).sum(axis=-1)


def predict_interval(k, interval, bias, interaction='cross_view'):
    """
    Raw score of one fully merged interval.

    Only pairs of features from different views interact by default. The
    'all_pairs' mode adds same-view pairs as in a classic factorization
    machine and is the only consumer of the square sums.
    """
    interval = np.asarray(interval, dtype=np.float64)
    if interval.shape[0] != 2 or interval.shape[-1] != k:
        raise ValueError(f"Expected interval of shape (2, V, {k}), got {interval.shape}")
    return float(bias + _interaction(interval[0], interval[1], interaction))


def link(raw, classification):
    """
    Identity for regression, logistic sigmoid for classification.

    The sigmoid is evaluated from exp(-|raw|), which never overflows. In
    float64 it still rounds to exactly 1.0 above raw ~ 37 and to 0.0 below
    raw ~ -745.
    """
    if not classification:
        return raw
    raw = np.asarray(raw, dtype=np.float64)
    z = np.exp(-np.abs(raw))
    score = np.where(raw >= 0, 1.0 / (1.0 + z), z / (1.0 + z))
    return score if score.ndim else float(score)


def forward_intervals(k, num_views, sample_ids, view_ids, values, weights):
    """
    Accumulate many joined (sample, view, value, factor) rows at once.

    Rows of the same sample are merged, which is the same as folding
    forward_interval results with reduce_interval.

    Returns:
        (unique sample ids, intervals of shape (n_samples, 2, num_views, k))
    """
    weights = np.asarray(weights, dtype=np.float64).reshape(-1, k)
    values = np.asarray(values, dtype=np.float64)
    uniques, codes = np.unique(np.asarray(sample_ids, dtype=np.int64), return_inverse=True)

    contrib = weights * values[:, None]
    intervals = np.zeros((len(uniques), 2, num_views, k), dtype=np.float64)
    np.add.at(intervals, (codes, 0, view_ids), contrib)
    np.add.at(intervals, (codes, 1, view_ids), contrib * contrib)
    return uniques, intervals


def predict_intervals(k, intervals, bias, interaction='cross_view', classification=False):
    """Scores for a stack of intervals of shape (n, 2, num_views, k)"""
    intervals = np.asarray(intervals, dtype=np.float64)
    intervals = intervals.reshape(-1, 2, intervals.shape[-2], k)
    raw = bias + _interaction(intervals[:, 0], intervals[:, 1], interaction)
    return link(raw, classification)
