"""
Feature id -> view index mapping.

Views are contiguous ranges of the feature id space given by their starting
offsets, e.g. ``[0, 3]`` puts features 0-2 in view 0 and features 3+ in
view 1. Each view also owns one synthetic indicator feature placed right
after the real features: ``num_features + view``.
"""
from bisect import bisect_right

import numpy as np

from .errors import FeatureIndexError


def validate_views(views):
    """Return views as a tuple of ints, rejecting invalid boundaries"""
    views = tuple(int(v) for v in views)
    if not views:
        raise ValueError("At least one view boundary is required")
    if views[0] != 0:
        raise ValueError(f"First view boundary must be 0, got {views[0]}")
    for prev, cur in zip(views, views[1:]):
        if cur <= prev:
            raise ValueError(f"View boundaries must be strictly increasing: {list(views)}")
    return views


def indicator_ids(num_features, num_views):
    """Feature ids of the per-view indicator features"""
    return [num_features + i for i in range(num_views)]


def feature_to_view(feature_id, views, num_features=None):
    """
    Map one feature id to its view.

    Args:
        feature_id: global feature id
        views: sorted view boundaries, views[0] == 0
        num_features: number of real features. When given, indicator ids
            map to their own view and anything past them is rejected.

    Returns:
        index of the largest boundary <= feature_id
    """
    num_views = len(views)
    if feature_id < 0:
        raise FeatureIndexError(f"Feature id {feature_id} is negative")
    if num_features is not None:
        if feature_id >= num_features + num_views:
            raise FeatureIndexError(
                f"Feature id {feature_id} out of range for {num_features} features "
                f"and {num_views} views"
            )
        if feature_id >= num_features:
            return feature_id - num_features
    return bisect_right(views, feature_id) - 1


def features_to_views(feature_ids, views, num_features):
    """Vectorized feature_to_view over an array of feature ids"""
    feature_ids = np.asarray(feature_ids, dtype=np.int64)
    num_views = len(views)
    if feature_ids.size:
        lo, hi = feature_ids.min(), feature_ids.max()
        if lo < 0 or hi >= num_features + num_views:
            bad = lo if lo < 0 else hi
            raise FeatureIndexError(
                f"Feature id {bad} out of range for {num_features} features "
                f"and {num_views} views"
            )

    view_ids = np.searchsorted(np.asarray(views, dtype=np.int64), feature_ids, side='right') - 1
    is_indicator = feature_ids >= num_features
    view_ids[is_indicator] = feature_ids[is_indicator] - num_features
    return view_ids
