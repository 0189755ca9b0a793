#!/usr/bin/env python3
"""
Vector Search Benchmarking Tool

Measures insert and top-k search latency of the linear-scan vector index
for growing index sizes, to show where the scan stops being interactive.

Usage:
    # Use defaults
    python run.py

    # Custom sizes and dimension
    python run.py --sizes 100 1000 5000 --dimension 512

    # Custom output directory
    python run.py --output-dir results
"""

import argparse
import json
import logging
import os
import statistics
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import List

import numpy as np

from item_memory.storage.vector.memory import InMemoryVectorIndex
from item_memory.storage.vector.persistence import dump_index, load_index

# Configure logging
logger = logging.getLogger("search-benchmark")
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@dataclass
class BenchmarkResult:
    """Timings for one index size."""
    size: int
    dimension: int
    insert_ms_per_item: float
    search_p50_ms: float
    search_p95_ms: float
    dump_ms: float
    load_ms: float
    blob_kb: float


def run_size(size: int, dimension: int, queries: int, k: int, seed: int) -> BenchmarkResult:
    """
    Build an index of ``size`` random vectors and time its operations.

    Args:
        size: Number of vectors
        dimension: Vector dimension
        queries: Number of search queries to time
        k: Neighbors per query
        seed: Random seed

    Returns:
        BenchmarkResult with the measured timings
    """
    rng = np.random.default_rng(seed)
    vectors = rng.random((size, dimension))

    index = InMemoryVectorIndex(dimension=dimension)
    start_time = time.perf_counter()
    for i, vector in enumerate(vectors):
        index.insert(f"item-{i}", vector.tolist(), {"price": f"${10 + i % 90}"})
    insert_ms = (time.perf_counter() - start_time) * 1000

    timings = []
    for query in rng.random((queries, dimension)):
        start_time = time.perf_counter()
        index.search(query.tolist(), k=k)
        timings.append((time.perf_counter() - start_time) * 1000)
    timings.sort()

    start_time = time.perf_counter()
    blob = dump_index(index)
    dump_ms = (time.perf_counter() - start_time) * 1000

    start_time = time.perf_counter()
    load_index(blob, dimension)
    load_ms = (time.perf_counter() - start_time) * 1000

    return BenchmarkResult(
        size=size,
        dimension=dimension,
        insert_ms_per_item=insert_ms / size,
        search_p50_ms=statistics.median(timings),
        search_p95_ms=timings[int(len(timings) * 0.95) - 1] if len(timings) > 1 else timings[0],
        dump_ms=dump_ms,
        load_ms=load_ms,
        blob_kb=len(blob) / 1024,
    )


def print_results(results: List[BenchmarkResult]):
    print("\n" + "=" * 80)
    print(f"{'size':>8} {'insert/item':>12} {'search p50':>11} {'search p95':>11} {'dump':>9} {'load':>9} {'blob':>10}")
    print("-" * 80)
    for r in results:
        print(
            f"{r.size:>8} {r.insert_ms_per_item:>10.3f}ms {r.search_p50_ms:>9.2f}ms "
            f"{r.search_p95_ms:>9.2f}ms {r.dump_ms:>7.0f}ms {r.load_ms:>7.0f}ms {r.blob_kb:>8.0f}KB"
        )
    print("=" * 80)


def main():
    parser = argparse.ArgumentParser(description="Benchmark the linear-scan vector index")
    parser.add_argument("--sizes", type=int, nargs="+", default=[100, 500, 1000, 2000])
    parser.add_argument("--dimension", type=int, default=1280)
    parser.add_argument("--queries", type=int, default=50)
    parser.add_argument("--k", type=int, default=5)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--output-dir", default=None, help="Write results as JSON to this directory")
    args = parser.parse_args()

    results = []
    for size in args.sizes:
        logger.info(f"Benchmarking index of {size} vectors (dimension={args.dimension})")
        results.append(run_size(size, args.dimension, args.queries, args.k, args.seed))

    print_results(results)

    if args.output_dir:
        os.makedirs(args.output_dir, exist_ok=True)
        path = os.path.join(args.output_dir, f"search_benchmark_{datetime.now():%Y%m%d_%H%M%S}.json")
        with open(path, 'w') as f:
            json.dump([asdict(r) for r in results], f, indent=2)
        logger.info(f"Results written to {path}")


if __name__ == "__main__":
    main()
