"""Polling loop that pages through trade history until it reaches the present."""

import asyncio
import logging
import time
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

from .aggregator import ClusterAggregator
from .clients.kraken_rest import KrakenRESTClient
from .exceptions import KrakenError
from .models import Trade

logger = logging.getLogger(__name__)

ClusterCallback = Callable[[List[Trade], int], Union[None, Awaitable[None]]]


class PollOutcome(str, Enum):
    CAUGHT_UP = "caught_up"
    STOPPED = "stopped"


class TradePoller:
    """Drives the trade fetcher for one pair and feeds a ClusterAggregator.

    ``run`` requests pages back to back, waiting ``request_delay`` before
    every request except the first one this poller makes, and returns once
    a non-empty page leaves the aggregator caught up with the wall clock.
    Cursor and aggregator survive between runs, so calling ``run`` again
    picks up where the previous run stopped and extends the bucket that was
    left open. The delay also applies to the first request of a later run.

    Fetch errors are never retried; they propagate with ``pair`` and
    ``cursor`` set to the request that failed. ``last_emitted_cursor`` is
    the safe point to resume from.
    """

    def __init__(
        self,
        client: KrakenRESTClient,
        pair: str,
        start_cursor: int,
        bucket_width: timedelta,
        on_cluster: ClusterCallback,
        request_delay: float = 1.0,
        stop_event: Optional[asyncio.Event] = None,
        clock: Callable[[], int] = time.time_ns
    ):
        if request_delay < 0:
            raise ValueError(f"request_delay must not be negative, got {request_delay}")

        self.client = client
        self.pair = pair.upper()
        self.cursor = start_cursor
        self.on_cluster = on_cluster
        self.request_delay = request_delay
        self._stop_event = stop_event
        self._requested = False
        self.aggregator = ClusterAggregator(bucket_width, clock=clock)
        self.last_emitted_cursor: Optional[int] = None

        self.stats = {
            'runs': 0,
            'pages_fetched': 0,
            'empty_pages': 0,
            'clusters_emitted': 0
        }

    @property
    def stop_event(self) -> asyncio.Event:
        # created on first use so it belongs to the loop that runs the poll
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        return self._stop_event

    async def run(self) -> PollOutcome:
        """Poll until caught up with the present or until the stop event is set."""
        self.stats['runs'] += 1
        logger.info(f"Starting poll for {self.pair} from cursor {self.cursor}")

        while True:
            if self.stop_event.is_set():
                return self._stopped()

            # only the very first request of this poller goes out undelayed
            if self._requested:
                await self._sleep(self.request_delay)
                if self.stop_event.is_set():
                    return self._stopped()
            self._requested = True

            try:
                page = await self.client.fetch_trades(self.pair, self.cursor)
            except KrakenError as e:
                e.pair = self.pair
                e.cursor = self.cursor
                raise

            self.stats['pages_fetched'] += 1
            if not page.trades:
                self.stats['empty_pages'] += 1

            for cluster, cursor in self.aggregator.process_page(page):
                await self._deliver(cluster, cursor)

            self.cursor = page.next_cursor

            if page.trades and self.aggregator.caught_up:
                logger.info(f"Poll for {self.pair} caught up at cursor {self.cursor}")
                return PollOutcome.CAUGHT_UP

            logger.debug(
                f"Page for {self.pair}: {len(page)} trades, "
                f"state={self.aggregator.state.value}, next cursor {self.cursor}"
            )

    async def flush(self) -> bool:
        """Emit the open cluster with the current cursor. Returns False when there was none."""
        cluster = self.aggregator.flush()
        if cluster is None:
            return False
        await self._deliver(cluster, self.cursor)
        return True

    def stop(self):
        """Ask a running poll to return at its next check."""
        self.stop_event.set()

    async def _deliver(self, cluster: List[Trade], cursor: int):
        result: Any = self.on_cluster(cluster, cursor)
        if asyncio.iscoroutine(result):
            await result
        self.last_emitted_cursor = cursor
        self.stats['clusters_emitted'] += 1

    async def _sleep(self, delay: float):
        """Wait ``delay`` seconds, returning early if the stop event is set."""
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _stopped(self) -> PollOutcome:
        logger.info(f"Poll for {self.pair} stopped at cursor {self.cursor}")
        return PollOutcome.STOPPED
