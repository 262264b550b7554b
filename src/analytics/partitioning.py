"""
Partitioned execution of mergeable accumulators.

Records are split into contiguous partitions, each folded into its own
accumulator on a worker thread, and the partial accumulators are merged back
in partition order. Every record keeps its global sequence number, so the
merged result equals a sequential fold.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Sequence, TypeVar
import logging

from src.models.errors import AnalyticsError
from src.models.schemas import FeedbackRecord

logger = logging.getLogger(__name__)

A = TypeVar("A")

DEFAULT_PARTITION_SIZE = 500


def fold(
    records: Sequence[FeedbackRecord],
    factory: Callable[[], A],
    feed: Callable[[A, int, FeedbackRecord], None],
    offset: int = 0,
) -> A:
    """Fold records into a fresh accumulator, numbering them from ``offset``."""
    acc = factory()
    for index, record in enumerate(records):
        feed(acc, offset + index, record)
    return acc


def accumulate_partitioned(
    records: Sequence[FeedbackRecord],
    factory: Callable[[], A],
    feed: Callable[[A, int, FeedbackRecord], None],
    max_workers: int = 1,
    partition_size: int = DEFAULT_PARTITION_SIZE,
) -> A:
    """
    Fold records into an accumulator, in parallel when it pays off.

    Args:
        records: Records in their canonical order
        factory: Creates an empty accumulator
        feed: Adds one record (with its global sequence number) to an accumulator
        max_workers: Worker threads; 1 runs sequentially
        partition_size: Records per partition

    Returns:
        The accumulator holding every record; its ``merge`` must be associative
    """
    if max_workers <= 1 or len(records) <= partition_size:
        return fold(records, factory, feed)

    partitions = [
        (offset, records[offset:offset + partition_size])
        for offset in range(0, len(records), partition_size)
    ]
    logger.info(f"Aggregating {len(records)} records in {len(partitions)} partitions ({max_workers} workers)")

    partials: Dict[int, A] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_offset = {
            executor.submit(fold, partition, factory, feed, offset): offset
            for offset, partition in partitions
        }

        for future in as_completed(future_to_offset):
            offset = future_to_offset[future]
            try:
                partials[offset] = future.result()
            except Exception as e:
                raise AnalyticsError(f"Error aggregating partition starting at record {offset}: {e}") from e

    # Merge in partition order
    ordered = [partials[offset] for offset in sorted(partials)]
    merged = ordered[0]
    for partial in ordered[1:]:
        merged = merged.merge(partial)
    return merged
