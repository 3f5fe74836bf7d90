"""
Transaction stream handling for LockMint

StreamConsumer receives one txid at a time, runs it through the
MintValidator and stores mined mints.  It also tracks block progress from
the stream's status messages.

Feeds deliver the events:

- JungleBusFeed: live JungleBus subscription over its Centrifuge
  websocket (JSON protocol).  Publications carrying a ``statusCode`` are
  control messages, the rest are transactions.
- TxidFileFeed: replays txids listed in a file, one per line.

Reorgs are only logged; there is no reconnect or backoff.
"""

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets

from lockmint.lib import util
from lockmint.lib.protocol import ProtocolConfig
from lockmint.server.metrics import MetricNames
from lockmint.server.mint_store import SaveResult


# JungleBus control message status codes
class ControlStatus:
    WAITING = 100
    BLOCK_DONE = 200
    REORG = 300
    ERROR = 999


@dataclass(frozen=True)
class ScanContext:
    """Everything a scan needs that is fixed at startup."""
    config: ProtocolConfig
    target_token_id: str


def status_height(message: Dict[str, Any]) -> Optional[int]:
    """Pick the block height out of a control message, if it has one."""
    for key in ('height', 'blockHeight'):
        value = message.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    block = message.get('block')
    if isinstance(block, dict):
        block = block.get('height')
    if isinstance(block, int) and not isinstance(block, bool):
        return block
    return None


class StreamConsumer:
    """
    Glue between a feed, the validator and the mint store.

    Candidates are handled one at a time in arrival order.  Only mints
    that are already mined get stored.
    """

    def __init__(self, validator, store, context: ScanContext,
                 metrics=None, progress_interval: int = 100):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.validator = validator
        self.store = store
        self.context = context
        self.metrics = metrics
        self.progress_interval = progress_interval

        self.processed_blocks = 0
        self.last_block_height: Optional[int] = None
        self.candidates = 0
        self.mints_found = 0
        self.mints_saved = 0
        self.duplicates = 0
        self.save_errors = 0
        self.unmined = 0
        self.reorgs = 0

    async def run(self, feed):
        """Consume *feed* until it ends."""
        self.logger.info(f'Scanning for mints of {self.context.target_token_id}')
        await feed.subscribe(self.on_publish, self.on_status, self.on_error)
        self.logger.info('Feed ended')

    async def on_publish(self, txid: str) -> Optional[SaveResult]:
        """Handle one transaction.  Returns the store outcome, if stored."""
        self.candidates += 1
        record = await self.validator.process(
            txid, self.context.config, self.context.target_token_id)
        if record is None:
            return None
        self.mints_found += 1

        if not record.is_mined:
            self.unmined += 1
            self._count(MetricNames.MINTS_UNMINED)
            self.logger.debug(f'Not storing unmined mint {txid}')
            return None

        result = await self.store.save(record)
        if result is SaveResult.INSERTED:
            self.mints_saved += 1
            self._count(MetricNames.MINTS_SAVED)
        elif result is SaveResult.DUPLICATE:
            self.duplicates += 1
            self._count(MetricNames.MINTS_DUPLICATE)
        else:
            self.save_errors += 1
            self._count(MetricNames.MINTS_SAVE_ERRORS)
        return result

    def on_status(self, message: Dict[str, Any]):
        """Handle a stream control message."""
        code = message.get('statusCode')
        if code == ControlStatus.BLOCK_DONE:
            self.processed_blocks += 1
            self._count(MetricNames.BLOCKS_PROCESSED)
            height = status_height(message)
            if height is not None:
                self.last_block_height = height
                if self.metrics is not None:
                    self.metrics.set_gauge(MetricNames.BLOCK_HEIGHT, height)
            if self.processed_blocks % self.progress_interval == 0:
                if height is not None:
                    self.logger.info(f'Progress: {self.processed_blocks:,} blocks '
                                     f'processed (current: block {height})')
                else:
                    self.logger.info(f'Progress: {self.processed_blocks:,} blocks processed')
        elif code == ControlStatus.REORG:
            self.reorgs += 1
            self._count(MetricNames.REORGS)
            self.logger.warning(f'Reorg triggered: {message}')
        elif code == ControlStatus.ERROR:
            self._count(MetricNames.STREAM_ERRORS)
            self.logger.error(f'Stream status error: {message}')
        elif code == ControlStatus.WAITING:
            self.logger.debug(f'Waiting for new blocks: {message}')

    def on_error(self, err):
        self._count(MetricNames.STREAM_ERRORS)
        self.logger.error(f'Stream error: {err}')

    def stats(self) -> Dict[str, Any]:
        return {
            'processed_blocks': self.processed_blocks,
            'last_block_height': self.last_block_height,
            'candidates': self.candidates,
            'mints_found': self.mints_found,
            'mints_saved': self.mints_saved,
            'duplicates': self.duplicates,
            'save_errors': self.save_errors,
            'unmined': self.unmined,
            'reorgs': self.reorgs,
        }

    def _count(self, name: str):
        if self.metrics is not None:
            self.metrics.inc_counter(name)


# ========================================================================
# Feeds
# ========================================================================

PublishHandler = Callable[[str], Awaitable[Any]]
StatusHandler = Callable[[Dict[str, Any]], None]
ErrorHandler = Callable[[Any], None]


async def dispatch_publication(data: Any,
                               on_publish: PublishHandler,
                               on_status: StatusHandler):
    """Route one publication to the transaction or status handler."""
    if not isinstance(data, dict):
        return
    if 'statusCode' in data:
        on_status(data)
        return
    txid = data.get('id')
    if isinstance(txid, str) and txid:
        await on_publish(txid)


class JungleBusFeed:
    """
    Live JungleBus subscription.

    Speaks the Centrifuge JSON protocol: one connect command, one
    subscribe command for ``query:<subscription>:<from_block>``, then
    pushes until the socket closes.  Empty frames are pings and are
    answered in kind.
    """

    def __init__(self, url: str, subscription_id: str, from_block: int,
                 connect=None):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.url = url
        self.subscription_id = subscription_id
        self.from_block = from_block
        self._connect = connect or websockets.connect

    @property
    def channel(self) -> str:
        return f'query:{self.subscription_id}:{self.from_block}'

    async def subscribe(self, on_publish: PublishHandler,
                        on_status: StatusHandler,
                        on_error: ErrorHandler):
        self.logger.info(f'Connecting to {self.url}')
        async with self._connect(self.url) as ws:
            await ws.send(json.dumps({'id': 1, 'connect': {'name': 'lockmint'}}))
            await ws.send(json.dumps({'id': 2, 'subscribe': {'channel': self.channel}}))
            self.logger.info(f'Subscribing from height {self.from_block}')
            async for frame in ws:
                if isinstance(frame, bytes):
                    frame = frame.decode()
                for line in frame.splitlines() or ['']:
                    await self.handle_message(ws, line, on_publish, on_status, on_error)

    async def handle_message(self, ws, line: str,
                             on_publish: PublishHandler,
                             on_status: StatusHandler,
                             on_error: ErrorHandler):
        line = line.strip()
        if not line or line == '{}':
            await ws.send('{}')
            return
        try:
            message = json.loads(line)
        except ValueError:
            on_error(f'undecodable frame: {line[:200]}')
            return
        if not isinstance(message, dict):
            return
        if 'error' in message:
            on_error(message['error'])
            return
        if message.get('id') == 1 and 'connect' in message:
            self.logger.info('Connected to JungleBus')
            return
        push = message.get('push')
        if isinstance(push, dict):
            pub = push.get('pub')
            if isinstance(pub, dict):
                await dispatch_publication(pub.get('data'), on_publish, on_status)


class TxidFileFeed:
    """Replays txids from a text file.  Blank lines and '#' comments are skipped."""

    def __init__(self, path: str):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.path = path

    async def subscribe(self, on_publish: PublishHandler,
                        on_status: StatusHandler,
                        on_error: ErrorHandler):
        count = 0
        with open(self.path, 'r') as f:
            for line in f:
                txid = line.split('#', 1)[0].strip()
                if not txid:
                    continue
                await on_publish(txid)
                count += 1
        self.logger.info(f'Replayed {count:,} txids from {self.path}')
