"""
Configuration for multi-view model scoring, evaluation and persistence
"""
import os


class BaseConfig:
    """Base configuration with common settings"""

    # Logging
    LOG_LEVEL = os.environ.get('MVM_LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

    # Column names shared by sample, prediction and factor frames
    SAMPLE_ID_COL = 'sampleId'
    INDICES_COL = 'indices'
    VALUES_COL = 'values'
    LABEL_COL = 'label'
    SCORE_COL = 'score'
    FEATURE_ID_COL = 'featureId'
    FACTORS_COL = 'factors'


class ScoringConfig(BaseConfig):
    """Configuration for the distributed scoring pipeline"""

    NUM_PARTITIONS = 8
    NUM_WORKERS = 4
    INTERACTION = 'cross_view'  # 'cross_view' or 'all_pairs'
    SHOW_PROGRESS = False

    def __init__(self, num_partitions=None, num_workers=None, interaction=None,
                 show_progress=None):
        self.num_partitions = num_partitions or self.NUM_PARTITIONS
        self.num_workers = self.NUM_WORKERS if num_workers is None else num_workers
        self.interaction = interaction or self.INTERACTION
        self.show_progress = self.SHOW_PROGRESS if show_progress is None else show_progress

        if self.interaction not in ('cross_view', 'all_pairs'):
            raise ValueError(f"Unknown interaction mode: {self.interaction}")
        if self.num_partitions < 1:
            raise ValueError(f"num_partitions must be positive, got {self.num_partitions}")


class EvaluationConfig(BaseConfig):
    """Configuration for loss computation"""

    # What to do with labeled samples that received no prediction
    ON_UNMATCHED = 'drop'  # 'drop' or 'raise'

    def __init__(self, on_unmatched=None):
        self.on_unmatched = on_unmatched or self.ON_UNMATCHED
        if self.on_unmatched not in ('drop', 'raise'):
            raise ValueError(f"Unknown unmatched-sample policy: {self.on_unmatched}")


class PersistenceConfig(BaseConfig):
    """On-disk layout of a saved model"""

    METADATA_DIR = 'metadata'
    DATA_DIR = 'data'
    METADATA_FILE = 'part-00000'
    DATA_FILE_TEMPLATE = 'part-{:05d}.parquet'

    # Supported (class, version) pairs
    CLASS_NAME_V1_0 = 'mvm.model.MVMModel'
    FORMAT_VERSION_V1_0 = '1.0'
    SUPPORTED_FORMATS = [(CLASS_NAME_V1_0, FORMAT_VERSION_V1_0)]
