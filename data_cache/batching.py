import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Sequence, TypeVar

from .config import CacheConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchReport:
    received: int = 0
    processed: int = 0
    batches: int = 0


def split_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Contiguous slices of at most `batch_size` items, in input order."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    items = list(items)
    return [items[i:i + batch_size] for i in range(0, len(items), batch_size)]


def run_batches(
    items: Sequence[T],
    config: CacheConfig,
    action: Callable[[List[T]], None],
    sleep: Callable[[float], None] = time.sleep,
    label: str = "BULK LOAD",
) -> BatchReport:
    """
    Call `action` once per batch, one batch after another, blocking for
    `config.delay` seconds before every batch except the first.
    """
    batches = split_batches(items, config.batch_size)
    report = BatchReport(received=len(items))
    logger.debug(f"{label} BEGIN ({len(batches)} batches of <= {config.batch_size}).")
    for batch in batches:
        if report.batches:
            sleep(config.delay)  # Throttle request rate.
        report.batches += 1
        report.processed += len(batch)
        action(batch)
    logger.info(f"{label} END (received: {report.received}, processed: {report.processed}).")
    return report
