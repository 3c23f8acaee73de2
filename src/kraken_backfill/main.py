"""Backfill service - pages Kraken trade history per pair and logs closed buckets."""

import asyncio
import logging
import os
import signal
import sys
from typing import Dict, List, Optional

from .clients.kraken_rest import KrakenRESTClient
from .config.settings import BackfillConfig, load_config
from .exceptions import KrakenError
from .models import Candle, Trade
from .scheduler import PollOutcome, TradePoller
from .utils.logging import log_error_with_context, setup_logging

logger = logging.getLogger(__name__)


class BackfillService:
    """Runs one TradePoller per configured pair until shutdown."""

    def __init__(self, config: BackfillConfig):
        self.config = config
        self.pollers: Dict[str, TradePoller] = {}
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Poll every pair concurrently, following the live edge until shutdown."""
        logger.info(f"Starting backfill for pairs {self.config.poller.pairs}")
        self._setup_signal_handlers()

        async with KrakenRESTClient(self.config.kraken) as client:
            for pair in self.config.poller.pairs:
                self.pollers[pair] = self._create_poller(client, pair)

            tasks = [
                asyncio.create_task(self._poll_loop(poller), name=f"poll-{pair}")
                for pair, poller in self.pollers.items()
            ]
            try:
                await asyncio.gather(*tasks)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        logger.info("Backfill service stopped")

    def stop(self):
        self._shutdown_event.set()

    def _create_poller(self, client: KrakenRESTClient, pair: str) -> TradePoller:
        poller_config = self.config.poller
        bucket_width = poller_config.bucket_width

        def on_cluster(trades: List[Trade], cursor: int):
            candle = Candle.from_trades(pair, trades, bucket_width)
            logger.info(
                f"{pair} {candle.time.isoformat()} "
                f"O={candle.open} H={candle.high} L={candle.low} C={candle.close} "
                f"V={candle.volume} n={candle.num_trades} cursor={cursor}"
            )

        return TradePoller(
            client=client,
            pair=pair,
            start_cursor=poller_config.start_cursor(),
            bucket_width=bucket_width,
            on_cluster=on_cluster,
            request_delay=poller_config.request_delay_seconds,
            stop_event=self._shutdown_event
        )

    async def _poll_loop(self, poller: TradePoller):
        """Repeat poll cycles for one pair; each cycle ends at the live edge."""
        while not self._shutdown_event.is_set():
            try:
                outcome = await poller.run()
            except KrakenError as e:
                log_error_with_context(
                    logger, e, f"polling {poller.pair}",
                    pair=poller.pair,
                    cursor=e.cursor,
                    last_emitted_cursor=poller.last_emitted_cursor
                )
                raise

            if outcome is PollOutcome.STOPPED:
                break

            logger.debug(f"{poller.pair} stats: {poller.stats}, aggregator: {poller.aggregator.stats}")
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.config.poller.poll_interval_seconds
                )
            except asyncio.TimeoutError:
                pass

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown")
            self._shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)


async def run_service(config_file: str) -> BackfillService:
    """Load configuration, set up logging and run the service to completion."""
    config = load_config(config_file)
    setup_logging(config.logging)

    service = BackfillService(config)
    await service.start()
    return service


def main(argv: Optional[List[str]] = None):
    """Console entry point."""
    argv = sys.argv[1:] if argv is None else argv
    config_file = argv[0] if argv else os.getenv("CONFIG_FILE", "config/local.yaml")

    try:
        asyncio.run(run_service(config_file))
    except KrakenError:
        # already logged by the poll loop
        sys.exit(1)
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
