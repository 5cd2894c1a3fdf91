import json
import os

import pandas as pd
import pytest

from mvm.cli import main


@pytest.fixture
def generated(tmp_path):
    out = str(tmp_path / 'run')
    main(['generate', '--output-dir', out, '--num-features', '30', '--views', '0,10,20',
          '--k', '3', '--num-samples', '50', '--classification', '--num-partitions', '2'])
    return out


def test_generate_writes_model_and_samples(generated):
    assert os.path.isdir(os.path.join(generated, 'model', 'metadata'))
    samples = pd.read_parquet(os.path.join(generated, 'samples.parquet'))
    assert len(samples) == 50
    assert set(samples['label'].unique()) <= {0.0, 1.0}


@pytest.mark.parametrize('backend', ['dataflow', 'torch'])
def test_score(generated, tmp_path, backend):
    output = str(tmp_path / f'predictions_{backend}.csv')
    main(['score', '--model', os.path.join(generated, 'model'),
          '--samples', os.path.join(generated, 'samples.parquet'),
          '--output', output, '--backend', backend, '--num-partitions', '3'])
    predictions = pd.read_csv(output)
    assert predictions['sampleId'].tolist() == list(range(50))
    assert predictions['score'].between(0, 1).all()


def test_evaluate(generated, capsys):
    main(['evaluate', '--model', os.path.join(generated, 'model'),
          '--samples', os.path.join(generated, 'samples.parquet')])
    results = json.loads(capsys.readouterr().out)
    assert results['metric'] == 'auc'
    assert results['num_samples'] == 50
    assert results['num_unmatched'] == 0


def test_inspect(generated, capsys):
    main(['inspect', '--model', os.path.join(generated, 'model')])
    metadata = json.loads(capsys.readouterr().out)
    assert metadata['views'] == '0,10,20'
    assert metadata['classification'] is True
