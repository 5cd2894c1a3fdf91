"""
Exception types raised by the mvm package
"""


class MVMError(Exception):
    """Base class for all mvm errors"""


class UnsupportedFormatError(MVMError):
    """Saved model has a (class, version) pair this package cannot read"""

    def __init__(self, class_name, version, supported):
        self.class_name = class_name
        self.version = version
        self.supported = list(supported)
        listing = '\n'.join(f"  ({c}, {v})" for c, v in self.supported)
        super().__init__(
            f"MVMModel.load did not recognize model with (className, format version): "
            f"({class_name}, {version}).  Supported:\n{listing}"
        )


class MalformedModelError(MVMError):
    """Persisted factor data does not have the expected shape"""


class ModelExistsError(MVMError):
    """Save target already exists"""


class FeatureIndexError(MVMError, IndexError):
    """Feature id falls outside the declared feature space"""


class UnmatchedSampleError(MVMError, ValueError):
    """Labeled samples received no prediction"""


class FeatureCountError(MVMError, ValueError):
    """Real feature count cannot be inferred from the factor table"""


class DuplicateSampleError(MVMError, ValueError):
    """Two sample rows share a sampleId"""
