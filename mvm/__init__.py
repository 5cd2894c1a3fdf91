"""
Multi-view factorization model scoring, evaluation and persistence
"""
from .config import EvaluationConfig, PersistenceConfig, ScoringConfig
from .dataflow import PartitionedFrame
from .errors import (DuplicateSampleError, FeatureCountError, FeatureIndexError, MalformedModelError,
                     ModelExistsError, MVMError, UnmatchedSampleError, UnsupportedFormatError)
from .model import MVMModel
from .persistence import load_model, save_model

__all__ = [
    'EvaluationConfig',
    'PersistenceConfig',
    'ScoringConfig',
    'PartitionedFrame',
    'MVMError',
    'DuplicateSampleError',
    'FeatureCountError',
    'FeatureIndexError',
    'MalformedModelError',
    'ModelExistsError',
    'UnmatchedSampleError',
    'UnsupportedFormatError',
    'MVMModel',
    'load_model',
    'save_model',
]
