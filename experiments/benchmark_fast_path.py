#!/usr/bin/env python
"""
Sample Covariance Fast Path Benchmark

Times the two multiply strategies of the fast sample covariance (BLAS
symmetric rank-k update vs. plain transpose-multiply) over a range of column
counts, and reports the smallest column count from which the BLAS update is
faster. Use the result as `fast_path_threshold` on the machine it ran on.

Usage:
    python experiments/benchmark_fast_path.py

    # Single-threaded BLAS, more repetitions, save the timings
    python experiments/benchmark_fast_path.py --blas-threads 1 --repeats 50 --output results/fast_path.csv
"""

import argparse
import logging
import sys
import time

import numpy as np
import pandas as pd
from threadpoolctl import threadpool_limits

from eegcov.covariance.linalg import SMALL_MATRIX_THRESHOLD, blas_num_threads, sample_covariance


logger = logging.getLogger(__name__)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Benchmark the sample covariance multiply strategies.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        '--columns',
        type=int,
        nargs='+',
        default=[4, 8, 16, 24, 32, 48, 64, 96, 128, 192, 256],
        help='Column counts (channels plus prototype columns) to benchmark'
    )
    parser.add_argument(
        '--samples', '-n',
        type=int,
        default=512,
        help='Number of samples (rows) of every trial'
    )
    parser.add_argument(
        '--repeats', '-r',
        type=int,
        default=20,
        help='Number of timed repetitions per configuration'
    )
    parser.add_argument(
        '--blas-threads',
        type=int,
        default=None,
        help='Limit the BLAS to this many threads (default: leave unchanged)'
    )
    parser.add_argument(
        '--complex',
        action='store_true',
        help='Benchmark complex-valued data'
    )
    parser.add_argument(
        '--seed',
        type=int,
        default=42,
        help='Random seed'
    )
    parser.add_argument(
        '--output', '-o',
        type=str,
        default=None,
        help='Optional CSV file for the timings'
    )
    return parser.parse_args()


def time_strategy(Y: np.ndarray, strategy: str, repeats: int) -> float:
    """Median wall time in seconds of one sample covariance."""
    sample_covariance(Y, strategy)  # warm-up
    timings = []
    for _ in range(repeats):
        start = time.perf_counter()
        sample_covariance(Y, strategy)
        timings.append(time.perf_counter() - start)
    return float(np.median(timings))


def run_benchmark(columns, n_samples, repeats, use_complex, seed) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    rows = []
    for n_columns in columns:
        Y = rng.standard_normal((n_samples, n_columns))
        if use_complex:
            Y = Y + 1j * rng.standard_normal((n_samples, n_columns))

        blas_time = time_strategy(Y, 'blas', repeats)
        direct_time = time_strategy(Y, 'direct', repeats)
        rows.append({
            'n_columns': n_columns,
            'blas_s': blas_time,
            'direct_s': direct_time,
            'speedup_blas': direct_time / blas_time,
        })
        logger.info(
            f"{n_columns:4d} columns | blas: {blas_time * 1e6:9.1f} us | "
            f"direct: {direct_time * 1e6:9.1f} us"
        )
    return pd.DataFrame(rows)


def crossover(results: pd.DataFrame):
    """Smallest column count from which the BLAS update is always at least as fast."""
    wins = (results['blas_s'] <= results['direct_s']).to_numpy()
    for i in range(len(wins)):
        if wins[i:].all():
            return int(results['n_columns'].iloc[i])
    return None


def main():
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    args = parse_args()

    with threadpool_limits(limits=args.blas_threads, user_api='blas'):
        logger.info(f"BLAS threads: {blas_num_threads()}")
        results = run_benchmark(
            sorted(args.columns), args.samples, args.repeats, args.complex, args.seed
        )

    threshold = crossover(results)
    if threshold is None:
        logger.info("The direct multiply was faster for every column count tested")
    else:
        logger.info(
            f"BLAS rank-k update wins from {threshold} columns "
            f"(current default threshold: {SMALL_MATRIX_THRESHOLD})"
        )

    if args.output:
        results.to_csv(args.output, index=False)
        logger.info(f"Timings saved to {args.output}")


if __name__ == "__main__":
    main()
