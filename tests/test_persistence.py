import json
import os

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from mvm.errors import MalformedModelError, ModelExistsError, UnsupportedFormatError
from mvm.model import MVMModel
from mvm.persistence import load_metadata, load_model, save_model

from .conftest import make_samples


def sorted_table(model):
    table = model.factor_table().sort_values('featureId').reset_index(drop=True)
    return table['featureId'].tolist(), [list(map(float, w)) for w in table['factors']]


def rewrite_metadata(path, **changes):
    filename = os.path.join(path, 'metadata', 'part-00000')
    with open(filename) as f:
        metadata = json.loads(f.readline())
    metadata.update(changes)
    with open(filename, 'w') as f:
        f.write(json.dumps(metadata) + '\n')


def test_round_trip(classification_model, tmp_path):
    path = str(tmp_path / 'model')
    classification_model.save(path)
    loaded = MVMModel.load(path)

    assert loaded.k == classification_model.k
    assert loaded.bias == classification_model.bias
    assert loaded.views == classification_model.views
    assert loaded.classification is True
    assert sorted_table(loaded) == sorted_table(classification_model)


def test_round_trip_scores(scenario_model, tmp_path):
    path = str(tmp_path / 'model')
    save_model(scenario_model, path)
    loaded = load_model(path)
    samples = make_samples({1: {0: 1.0, 3: 1.0}, 2: {1: 2.0, 4: 1.0}})
    original = scenario_model.predict(samples).to_pandas().sort_values('sampleId')
    reloaded = loaded.predict(samples).to_pandas().sort_values('sampleId')
    np.testing.assert_allclose(reloaded['score'], original['score'])


def test_metadata_layout(scenario_model, tmp_path):
    path = str(tmp_path / 'model')
    scenario_model.save(path)
    class_name, version, metadata = load_metadata(path)
    assert (class_name, version) == ('mvm.model.MVMModel', '1.0')
    assert metadata['views'] == '0,3'
    assert metadata['k'] == 2
    assert metadata['bias'] == 0.5
    assert metadata['classification'] is False

    files = sorted(os.listdir(os.path.join(path, 'data')))
    assert files == ['part-00000.parquet', 'part-00001.parquet']
    schema = pq.read_schema(os.path.join(path, 'data', files[0]))
    assert schema.names == ['featureId', 'factors']
    assert schema.field('featureId').type == pa.int64()


def test_factor_table_is_read_lazily(scenario_model, tmp_path):
    path = str(tmp_path / 'model')
    scenario_model.save(path)
    loaded = load_model(path)
    assert loaded.factors.num_partitions == 2
    assert not loaded.factors.is_persisted


@pytest.mark.parametrize('changes', [{'version': '2.0'}, {'class': 'other.Model'}])
def test_unsupported_format(scenario_model, tmp_path, changes):
    path = str(tmp_path / 'model')
    scenario_model.save(path)
    rewrite_metadata(path, **changes)
    with pytest.raises(UnsupportedFormatError) as excinfo:
        load_model(path)
    message = str(excinfo.value)
    assert '(mvm.model.MVMModel, 1.0)' in message
    assert 'Supported' in message


def test_wrong_column_count(scenario_model, tmp_path):
    path = str(tmp_path / 'model')
    scenario_model.save(path)
    filename = os.path.join(path, 'data', 'part-00000.parquet')
    table = pq.read_table(filename).append_column('extra', pa.array([1] * pq.read_metadata(filename).num_rows))
    pq.write_table(table, filename)
    with pytest.raises(MalformedModelError, match='expected 2 columns'):
        load_model(path)


def test_empty_factor_data(scenario_model, tmp_path):
    path = str(tmp_path / 'model')
    scenario_model.save(path)
    for name in os.listdir(os.path.join(path, 'data')):
        os.remove(os.path.join(path, 'data', name))
    with pytest.raises(MalformedModelError):
        load_model(path)


def test_wrong_factor_length(scenario_model, tmp_path):
    path = str(tmp_path / 'model')
    scenario_model.save(path)
    rewrite_metadata(path, k=3)
    with pytest.raises(MalformedModelError, match='length 3'):
        load_model(path)


def test_inconsistent_factor_length_found_on_read(tmp_path):
    path = str(tmp_path / 'model')
    MVMModel.from_factors(2, 0.0, [0, 1], False, {0: [1.0, 0.0], 1: [0.0, 1.0], 2: [1.0, 1.0]}).save(path)
    filename = os.path.join(path, 'data', 'part-00000.parquet')
    table = pa.table({'featureId': pa.array([0, 1, 2], pa.int64()),
                      'factors': pa.array([[1.0, 0.0], [0.0, 1.0, 2.0], [1.0, 1.0]],
                                          pa.list_(pa.float64()))})
    pq.write_table(table, filename)

    loaded = load_model(path)  # only the first row of each file is checked at load
    with pytest.raises(MalformedModelError, match='got 3'):
        loaded.factor_table()


def test_refuses_to_overwrite(scenario_model, tmp_path):
    path = str(tmp_path / 'model')
    scenario_model.save(path)
    with pytest.raises(ModelExistsError):
        scenario_model.save(path)
    scenario_model.save(path, overwrite=True)
    assert load_model(path).bias == 0.5


def test_factors_loaded_from_dataframe(tmp_path):
    df = pd.DataFrame({'featureId': [0, 1, 2], 'factors': [[1.0], [2.0], [3.0]]})
    model = MVMModel.from_factors(1, 0.0, [0, 1], False, df)
    path = str(tmp_path / 'model')
    model.save(path)
    assert sorted_table(load_model(path)) == ([0, 1, 2], [[1.0], [2.0], [3.0]])
