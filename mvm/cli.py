"""
Command line entry point: generate / score / evaluate / inspect
"""
import argparse
import json
import logging
import os
import time

import pandas as pd

from .config import ScoringConfig
from .logger import setup_logging
from .model import MVMModel
from .persistence import load_metadata
from .predict import MVMPredictor
from .synthetic import generate_model, generate_samples

logger = logging.getLogger(__name__)


def _scoring_config(args):
    return ScoringConfig(num_partitions=args.num_partitions, num_workers=args.num_workers,
                         interaction=args.interaction, show_progress=args.progress)


def cmd_generate(args):
    views = [int(v) for v in args.views.split(',')]
    model = generate_model(args.num_features, views, k=args.k,
                           classification=args.classification, bias=args.bias,
                           seed=args.seed, num_partitions=args.num_partitions or 1)
    samples = generate_samples(args.num_samples, args.num_features, nnz=args.nnz,
                               model=model, seed=args.seed)

    os.makedirs(args.output_dir, exist_ok=True)
    model.save(os.path.join(args.output_dir, 'model'), overwrite=args.overwrite)
    samples_path = os.path.join(args.output_dir, 'samples.parquet')
    samples.to_parquet(samples_path, engine='pyarrow', index=False)
    logger.info(f"Generated {len(samples)} samples -> {samples_path}")


def cmd_score(args):
    model = MVMModel.load(args.model)
    samples = pd.read_parquet(args.samples, engine='pyarrow')
    logger.info(f"Scoring {len(samples)} samples with backend={args.backend}")

    start_time = time.time()
    if args.backend == 'torch':
        predictor = MVMPredictor(model, num_features=args.num_features, config=_scoring_config(args))
        predictions = predictor.predict_batch(samples, batch_size=args.batch_size)
    else:
        predictions = model.predict(samples, num_features=args.num_features,
                                    config=_scoring_config(args)).to_pandas()
    predictions = predictions.sort_values('sampleId').reset_index(drop=True)
    logger.info(f"Scored {len(predictions)} samples in {time.time() - start_time:.2f}s")

    if args.output.endswith('.csv'):
        predictions.to_csv(args.output, index=False)
    else:
        predictions.to_parquet(args.output, engine='pyarrow', index=False)
    logger.info(f"Predictions saved to: {args.output}")


def cmd_evaluate(args):
    model = MVMModel.load(args.model)
    samples = pd.read_parquet(args.samples, engine='pyarrow')
    results = model.evaluate(samples, num_features=args.num_features,
                             on_unmatched=args.on_unmatched, config=_scoring_config(args))
    print(json.dumps(results, indent=2))


def cmd_inspect(args):
    _, _, metadata = load_metadata(args.model)
    print(json.dumps(metadata, indent=2))


def build_parser():
    parser = argparse.ArgumentParser(description='Multi-view factorization model scoring')
    parser.add_argument('--log-dir', type=str, default=None,
                        help='Also write logs to <log-dir>/mvm.log')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Logging level (default: $MVM_LOG_LEVEL or INFO)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    def add_scoring_args(p):
        p.add_argument('--model', type=str, required=True, help='Saved model directory')
        p.add_argument('--samples', type=str, required=True, help='Samples parquet file')
        p.add_argument('--num-features', type=int, default=None,
                       help='Number of real features (default: inferred from the factor table)')
        p.add_argument('--num-partitions', type=int, default=None)
        p.add_argument('--num-workers', type=int, default=None)
        p.add_argument('--interaction', choices=['cross_view', 'all_pairs'], default=None)
        p.add_argument('--progress', action='store_true', help='Show partition progress bars')

    gen = subparsers.add_parser('generate', help='Write a random model and labeled samples')
    gen.add_argument('--output-dir', type=str, required=True)
    gen.add_argument('--num-features', type=int, default=100)
    gen.add_argument('--views', type=str, default='0,50', help='Comma-separated view boundaries')
    gen.add_argument('--k', type=int, default=4)
    gen.add_argument('--bias', type=float, default=0.0)
    gen.add_argument('--classification', action='store_true')
    gen.add_argument('--num-samples', type=int, default=1000)
    gen.add_argument('--nnz', type=int, default=5, help='Max active features per sample')
    gen.add_argument('--num-partitions', type=int, default=None)
    gen.add_argument('--seed', type=int, default=42)
    gen.add_argument('--overwrite', action='store_true')
    gen.set_defaults(func=cmd_generate)

    score = subparsers.add_parser('score', help='Score samples with a saved model')
    add_scoring_args(score)
    score.add_argument('--output', type=str, required=True, help='.parquet or .csv')
    score.add_argument('--backend', choices=['dataflow', 'torch'], default='dataflow')
    score.add_argument('--batch-size', type=int, default=4096, help='Batch size for the torch backend')
    score.set_defaults(func=cmd_score)

    evaluate = subparsers.add_parser('evaluate', help='Compute RMSE / AUC on labeled samples')
    add_scoring_args(evaluate)
    evaluate.add_argument('--on-unmatched', choices=['drop', 'raise'], default=None)
    evaluate.set_defaults(func=cmd_evaluate)

    inspect = subparsers.add_parser('inspect', help='Print saved model metadata')
    inspect.add_argument('--model', type=str, required=True)
    inspect.set_defaults(func=cmd_inspect)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.log_dir, args.log_level)
    args.func(args)


if __name__ == '__main__':
    main()
