"""
Scanner bootstrap for LockMint.

Resolves the deploy configuration once, wires the validator, store and
consumer together and runs the feed.  The status API, when enabled,
shares the event loop.
"""

import asyncio

from lockmint import version
from lockmint.lib import util
from lockmint.server.engine import MintValidator
from lockmint.server.metrics import MetricsCollector
from lockmint.server.mint_store import SupabaseMintStore
from lockmint.server.resolver import OutputResolver
from lockmint.server.stream import (
    JungleBusFeed, ScanContext, StreamConsumer, TxidFileFeed,
)


class StartupError(Exception):
    """The scanner cannot start."""


class Controller:

    def __init__(self, env):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.env = env
        self.metrics = MetricsCollector()
        self.resolver = OutputResolver(env.ordinals_api_url, env.request_timeout)
        self.store = SupabaseMintStore(env.supabase_url, env.supabase_key,
                                       env.supabase_table, env.request_timeout)
        self.context = None
        self.consumer = None

    def make_feed(self):
        env = self.env
        if env.txid_file:
            return TxidFileFeed(env.txid_file)
        return JungleBusFeed(env.junglebus_url, env.subscription_id,
                             env.starting_height)

    async def setup(self) -> StreamConsumer:
        """Fetch the deploy configuration and build the consumer."""
        config = await self.resolver.fetch_protocol_config(self.env.target_token_id)
        if config is None:
            raise StartupError('Failed to fetch deployment configuration for '
                               f'{self.env.target_token_id}')
        self.logger.info(
            f'Target {config.tick} ({self.env.target_token_id}): '
            f'min {config.min_satoshis_locked:,} sats locked for '
            f'{config.min_blocks_locked:,} blocks'
        )
        self.context = ScanContext(config=config,
                                   target_token_id=self.env.target_token_id)
        validator = MintValidator(self.resolver, self.metrics)
        self.consumer = StreamConsumer(validator, self.store, self.context,
                                       metrics=self.metrics,
                                       progress_interval=self.env.progress_interval)
        return self.consumer

    async def serve_api(self):
        import uvicorn
        from lockmint.server.rest_api import app, set_scanner

        env = self.env
        set_scanner(self.context, self.consumer, self.metrics, env.rest_api_key)
        config = uvicorn.Config(app, host=env.rest_api_host, port=env.rest_api_port,
                                log_level=env.log_level.lower())
        self.logger.info(f'Status API on {env.rest_api_host}:{env.rest_api_port}')
        try:
            await uvicorn.Server(config).serve()
        except SystemExit as e:
            # uvicorn exits the process when it cannot bind
            raise StartupError(f'Status API could not start on '
                               f'{env.rest_api_host}:{env.rest_api_port}') from e

    def _api_done(self, task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f'Status API stopped: {exc}')
        else:
            self.logger.warning('Status API exited')

    async def run(self):
        self.logger.info(f'{version} starting')
        api_task = None
        try:
            consumer = await self.setup()
            if self.env.rest_api_enabled:
                api_task = asyncio.create_task(self.serve_api())
                api_task.add_done_callback(self._api_done)
            self.logger.info('Saving qualifying mints as they are found')
            await consumer.run(self.make_feed())
        finally:
            if api_task is not None:
                api_task.cancel()
                await asyncio.gather(api_task, return_exceptions=True)
            await self.resolver.close()
            await self.store.close()
