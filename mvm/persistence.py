"""
Versioned save/load of MVMModel.

Layout under the model path:

    metadata/part-00000       one JSON line: class, version, bias, k, views, classification
    data/part-NNNNN.parquet   factor table, columns featureId (int64) and factors (list<double>)

Only the (class, version) pairs listed in PersistenceConfig.SUPPORTED_FORMATS
can be loaded.
"""
import json
import logging
import os
import shutil

import numpy as np
import pyarrow as pa
import pyarrow.parquet as pq

from .config import PersistenceConfig
from .dataflow import PartitionedFrame
from .errors import MalformedModelError, ModelExistsError, UnsupportedFormatError
from .model import MVMModel

logger = logging.getLogger(__name__)

CFG = PersistenceConfig

FACTOR_SCHEMA = pa.schema([
    (CFG.FEATURE_ID_COL, pa.int64()),
    (CFG.FACTORS_COL, pa.list_(pa.float64())),
])


def metadata_path(path):
    return os.path.join(path, CFG.METADATA_DIR)


def data_path(path):
    return os.path.join(path, CFG.DATA_DIR)


def save_model(model, path, overwrite=False):
    """Write model metadata and one parquet file per factor partition"""
    if os.path.exists(path):
        if not overwrite:
            raise ModelExistsError(f"Model path already exists: {path}")
        shutil.rmtree(path)

    os.makedirs(metadata_path(path))
    os.makedirs(data_path(path))

    metadata = {
        'class': CFG.CLASS_NAME_V1_0,
        'version': CFG.FORMAT_VERSION_V1_0,
        'bias': model.bias,
        'k': model.k,
        'views': ','.join(str(v) for v in model.views),
        'classification': model.classification,
    }
    with open(os.path.join(metadata_path(path), CFG.METADATA_FILE), 'w') as f:
        f.write(json.dumps(metadata) + '\n')

    num_rows = 0
    for i, part in enumerate(model.factors.partitions()):
        table = pa.table({
            CFG.FEATURE_ID_COL: pa.array(part[CFG.FEATURE_ID_COL].to_numpy(dtype=np.int64), pa.int64()),
            CFG.FACTORS_COL: pa.array([np.asarray(w, dtype=np.float64).tolist()
                                       for w in part[CFG.FACTORS_COL]], pa.list_(pa.float64())),
        }, schema=FACTOR_SCHEMA)
        pq.write_table(table, os.path.join(data_path(path), CFG.DATA_FILE_TEMPLATE.format(i)))
        num_rows += table.num_rows

    logger.info(f"Saved model (k={model.k}, views={len(model.views)}, {num_rows} factors) to {path}")


def load_metadata(path):
    """Return (class name, version, metadata dict)"""
    with open(os.path.join(metadata_path(path), CFG.METADATA_FILE)) as f:
        metadata = json.loads(f.readline())
    return metadata.get('class'), metadata.get('version'), metadata


def _read_factor_file(filename, k):
    def read():
        df = pq.read_table(filename).to_pandas()
        bad = df[CFG.FACTORS_COL].map(len) != k
        if bad.any():
            raise MalformedModelError(
                f"Expected factor vectors of length {k}, got {len(df[CFG.FACTORS_COL][bad].iloc[0])} "
                f"in {filename}"
            )
        return df
    return read


def load_model(path):
    """Load a saved MVMModel; the factor table is read lazily, one partition per file"""
    class_name, version, metadata = load_metadata(path)
    if (class_name, version) not in CFG.SUPPORTED_FORMATS:
        raise UnsupportedFormatError(class_name, version, CFG.SUPPORTED_FORMATS)

    k = int(metadata['k'])
    bias = float(metadata['bias'])
    views = [int(v) for v in metadata['views'].split(',')]
    classification = bool(metadata['classification'])

    data_dir = data_path(path)
    files = sorted(
        os.path.join(data_dir, name) for name in os.listdir(data_dir) if name.endswith('.parquet')
    ) if os.path.isdir(data_dir) else []

    # Validate shape once up front
    schemas = [pq.read_schema(f) for f in files]
    num_rows = sum(pq.read_metadata(f).num_rows for f in files)
    if num_rows == 0:
        raise MalformedModelError(f"Unable to load {class_name} data from: {data_dir} (no factor rows)")
    for f, schema in zip(files, schemas):
        if schema.names != [CFG.FEATURE_ID_COL, CFG.FACTORS_COL]:
            raise MalformedModelError(
                f"Unable to load {class_name} data from: {f}; expected 2 columns "
                f"{[CFG.FEATURE_ID_COL, CFG.FACTORS_COL]}, got {len(schema.names)} {schema.names}"
            )
        # First row only; remaining rows are checked when the partition is read
        first = next(pq.ParquetFile(f).iter_batches(batch_size=1, columns=[CFG.FACTORS_COL]), None)
        if first is not None and first.num_rows:
            vector = first.column(0)[0].as_py()
            length = 0 if vector is None else len(vector)
            if length != k:
                raise MalformedModelError(
                    f"Expected factor vectors of length {k}, got {length} in {f}")

    factors = PartitionedFrame([_read_factor_file(f, k) for f in files], name='factors')
    logger.info(f"Loaded model (k={k}, views={len(views)}, {num_rows} factors) from {path}")
    return MVMModel(k, bias, views, classification, factors)
