"""
A small partitioned-collection engine on top of pandas.

A PartitionedFrame is a list of lazily computed pandas partitions. Every
partition is produced by a thunk, so a partition that was not persisted can
always be recomputed from its lineage. Narrow operations run per partition
(optionally on a thread pool); joins and reductions hash-shuffle rows by key.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import reduce

import numpy as np
import pandas as pd
from tqdm import tqdm

logger = logging.getLogger(__name__)


def object_column(values):
    """1-d object array holding arbitrary (array) values, one per row"""
    column = np.empty(len(values), dtype=object)
    for i, v in enumerate(values):
        column[i] = v
    return column


def _bucket_of(keys, num_partitions):
    keys = np.asarray(keys)
    # Equal integer keys must hash alike whatever their width or signedness
    if keys.dtype.kind in 'iu':
        keys = keys.astype(np.int64)
    hashes = pd.util.hash_array(keys)
    return (hashes % np.uint64(num_partitions)).astype(np.int64)


class _ShuffleStage:
    """Materialized output of a hash shuffle, computed once on first access"""

    def __init__(self, parent, key, num_partitions):
        self.parent = parent
        self.key = key
        self.num_partitions = num_partitions
        self._buckets = None
        self._lock = threading.Lock()

    def bucket(self, i):
        with self._lock:
            if self._buckets is None:
                self._buckets = self._run()
        return self._buckets[i]

    def _run(self):
        parts = self.parent.partitions()
        pieces = [[] for _ in range(self.num_partitions)]
        for part in parts:
            if part.empty:
                continue
            buckets = _bucket_of(part[self.key].to_numpy(), self.num_partitions)
            for b, grp in part.groupby(buckets, sort=False):
                pieces[b].append(grp)

        empty = parts[0].iloc[0:0]
        return [pd.concat(p, ignore_index=True) if p else empty for p in pieces]


class PartitionedFrame:
    """Lazily evaluated, partitioned collection of pandas rows"""

    def __init__(self, thunks, num_workers=0, show_progress=False, name=None, partitioned_by=None):
        self._thunks = list(thunks)
        if not self._thunks:
            raise ValueError("A PartitionedFrame needs at least one partition")
        self.num_workers = num_workers
        self.show_progress = show_progress
        self.name = name or 'frame'
        self.partitioned_by = partitioned_by
        self._cache = None

    @classmethod
    def from_pandas(cls, df, num_partitions=1, key=None, **kwargs):
        """Split a DataFrame by row ranges, or by key hash when key is given"""
        num_partitions = max(1, int(num_partitions))
        if key is not None and not df.empty:
            buckets = _bucket_of(df[key].to_numpy(), num_partitions)
            parts = [df[buckets == i].reset_index(drop=True) for i in range(num_partitions)]
        else:
            bounds = np.linspace(0, len(df), num_partitions + 1).astype(int)
            parts = [df.iloc[lo:hi].reset_index(drop=True) for lo, hi in zip(bounds, bounds[1:])]
        return cls([(lambda p=p: p) for p in parts], partitioned_by=key, **kwargs)

    def _derive(self, thunks, name, partitioned_by=None):
        return PartitionedFrame(thunks, num_workers=self.num_workers,
                                show_progress=self.show_progress, name=name,
                                partitioned_by=partitioned_by)

    @property
    def num_partitions(self):
        return len(self._thunks)

    @property
    def is_persisted(self):
        return self._cache is not None

    def partition(self, i):
        if self._cache is not None:
            return self._cache[i]
        return self._thunks[i]()

    def partitions(self):
        """Compute (or fetch the persisted) list of partitions"""
        if self._cache is not None:
            return self._cache

        indices = range(self.num_partitions)
        if self.num_workers and self.num_workers > 1:
            with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
                results = executor.map(self.partition, indices)
                return list(tqdm(results, total=self.num_partitions, desc=self.name,
                                 disable=not self.show_progress))
        return [self.partition(i) for i in tqdm(indices, desc=self.name,
                                                 disable=not self.show_progress)]

    def persist(self):
        if self._cache is None:
            self._cache = self.partitions()
            logger.debug(f"Persisted {self.name} ({self.num_partitions} partitions)")
        return self

    def unpersist(self):
        if self._cache is not None:
            self._cache = None
            logger.debug(f"Released {self.name}")
        return self

    def map_partitions(self, fn, name=None, preserves_partitioning=False):
        """
        Apply fn(DataFrame) -> DataFrame to every partition.

        Set preserves_partitioning when fn keeps the key column and never
        moves rows between keys, so the result stays partitioned by that key.
        """
        thunks = [(lambda i=i: fn(self.partition(i))) for i in range(self.num_partitions)]
        partitioned_by = self.partitioned_by if preserves_partitioning else None
        return self._derive(thunks, name or self.name, partitioned_by)

    def shuffle(self, key, num_partitions=None, name=None):
        """Redistribute rows so that equal keys share a partition"""
        stage = _ShuffleStage(self, key, num_partitions or self.num_partitions)
        thunks = [(lambda i=i: stage.bucket(i)) for i in range(stage.num_partitions)]
        return self._derive(thunks, name or f"{self.name}-shuffled", partitioned_by=key)

    def join(self, other, on, how='inner', num_partitions=None, name=None):
        """Equi-join with another PartitionedFrame on a key column"""
        n = num_partitions or max(self.num_partitions, other.num_partitions)
        left = self.shuffle(on, n)
        right = other.shuffle(on, n)
        thunks = [
            (lambda i=i: pd.merge(left.partition(i), right.partition(i), on=on, how=how))
            for i in range(n)
        ]
        return self._derive(thunks, name or f"{self.name}-join")

    def reduce_by_key(self, key, value, merge, num_partitions=None, name=None):
        """
        Combine all values sharing a key with an associative, commutative merge.

        Values are combined inside each partition first, then shuffled and
        combined again, so the grouping and order of merges is arbitrary.
        """
        def combine(df):
            if df.empty:
                return df[[key, value]]
            keys, merged = [], []
            for k, grp in df.groupby(key, sort=False)[value]:
                keys.append(k)
                merged.append(reduce(merge, grp.tolist()))
            out = pd.DataFrame({key: keys})
            out[value] = object_column(merged)
            return out

        partial = self.map_partitions(combine, name=f"{self.name}-combine")
        shuffled = partial.shuffle(key, num_partitions)
        return shuffled.map_partitions(combine, name=name or f"{self.name}-reduced")

    def to_pandas(self):
        parts = self.partitions()
        return pd.concat(parts, ignore_index=True)

    def count(self):
        return sum(len(p) for p in self.partitions())
