"""Time-bucket clustering of paged trade history."""

import logging
import time
from datetime import timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .models import Trade, TradePage, width_to_ns

logger = logging.getLogger(__name__)

# (cluster, cursor after the page that closed it)
Emission = Tuple[List[Trade], int]


class AggregatorState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    CAUGHT_UP = "caught_up"


class ClusterAggregator:
    """
    Groups the trades of one pair into fixed-width time buckets.

    Pages are fed in cursor order. Within a page trades are reordered by id.
    A bucket is closed only when the first trade of a later bucket arrives;
    the bucket that is still open when the stream reaches the present stays
    open until the next poll extends or closes it, or until ``flush``.
    """

    def __init__(
        self,
        bucket_width: timedelta,
        clock: Callable[[], int] = time.time_ns
    ):
        self.bucket_width = bucket_width
        self.width_ns = width_to_ns(bucket_width)
        self.clock = clock

        self.state = AggregatorState.IDLE
        self.bucket_key: Optional[int] = None
        self.last_trade_id: Optional[int] = None
        self._buffer: List[Trade] = []

        self.stats = {
            'trades_processed': 0,
            'clusters_emitted': 0,
            'duplicates_skipped': 0
        }

    @property
    def caught_up(self) -> bool:
        return self.state is AggregatorState.CAUGHT_UP

    @property
    def open_cluster(self) -> List[Trade]:
        """Copy of the trades buffered for the open bucket."""
        return list(self._buffer)

    def bucket_of(self, timestamp_ns: int) -> int:
        return timestamp_ns - timestamp_ns % self.width_ns

    def process_page(self, page: TradePage) -> List[Emission]:
        """Feed one page and return the clusters it closed, oldest first."""
        emissions: List[Emission] = []

        for trade in sorted(page.trades, key=lambda t: t.id):
            if self.last_trade_id is not None and trade.id <= self.last_trade_id:
                # overlap at a page boundary
                self.stats['duplicates_skipped'] += 1
                logger.debug(f"Skipping already processed trade {trade.id} for {page.pair}")
                continue

            bucket = self.bucket_of(trade.timestamp_ns)

            if self.bucket_key is None:
                self.bucket_key = bucket
            elif bucket != self.bucket_key:
                if self._buffer:
                    emissions.append((self._buffer, page.next_cursor))
                    self.stats['clusters_emitted'] += 1
                    self._buffer = []
                self.bucket_key = bucket

            self._buffer.append(trade)
            self.last_trade_id = trade.id
            self.stats['trades_processed'] += 1

            # real time keeps moving, so this is re-checked for every trade
            if self.bucket_of(self.clock()) == bucket:
                self.state = AggregatorState.CAUGHT_UP
            else:
                self.state = AggregatorState.ACCUMULATING

        if emissions:
            logger.debug(f"Closed {len(emissions)} clusters for {page.pair}")

        return emissions

    def flush(self) -> Optional[List[Trade]]:
        """Close the open cluster now and return it, or None when empty.

        The bucket key is kept, so later trades of the same bucket start a
        new cluster for that bucket.
        """
        if not self._buffer:
            return None

        cluster = self._buffer
        self._buffer = []
        self.stats['clusters_emitted'] += 1
        return cluster

    def reset(self):
        """Drop all state, including the open cluster."""
        self.state = AggregatorState.IDLE
        self.bucket_key = None
        self.last_trade_id = None
        self._buffer = []
