"""
Mint Candidate Validation Engine for LockMint

Decides whether a transaction is a valid LLM-21 lock-like-mint and, if so,
builds the MintRecord that gets persisted.

Pipeline for one candidate:

  1. Resolve outputs 0, 1 and 2 concurrently.  If any lookup fails the
     candidate is rejected; nothing is evaluated on a partial set.
  2. Stage A, lock (output 0): lock present, enough satoshis, locked for
     at least the deploy's minimum number of blocks.
  3. Stage B, like (output 1): MAP annotation of type "like" in "tx"
     context with a non-blank app name.
  4. Stage C, mint (output 2): exactly 1 sat, inscription JSON with
     op "mint", protocol "llm-21", the target token id, amount <= 1000.
  5. Build the MintRecord.

Rejections are return values (None), never exceptions.  The reason is
logged at debug level and counted per stage.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from lockmint.lib import util
from lockmint.lib.outputs import (
    EndorsementOutput, Invalid, LockOutput, MintInscriptionOutput,
    parse_endorsement_output, parse_lock_output, parse_mint_output,
)
from lockmint.lib.protocol import (
    INSCRIPTION_SATOSHIS, LIKE_CONTEXT, LIKE_KIND, MAX_MINT_AMOUNT,
    MINT_OUTPUTS, PROTOCOL_ID, MintOp, ProtocolConfig, UNKNOWN_TICK,
)
from lockmint.server.metrics import MetricNames


# Stage labels for logs and the rejections metric
class Stage:
    RESOLVE = 'resolve'
    LOCK = 'lock'
    LIKE = 'like'
    MINT = 'mint'


class MintRecord(BaseModel):
    """A validated lock-like-mint.  Immutable once built."""
    model_config = ConfigDict(frozen=True)

    txid: str
    mined_height: Optional[int]
    satoshis_locked: int
    locked_until_block: int
    blocks_locked: Optional[int]
    lock_address: Optional[str]
    endorsed_tx: Optional[str]
    endorsing_app: str
    token_tick: str
    token_id: str
    amount_minted: Union[int, float]
    protocol_id: str

    @property
    def is_mined(self) -> bool:
        return self.mined_height is not None

    def to_row(self) -> Dict[str, Any]:
        """Row for the ``mints`` table."""
        return {
            'txid': self.txid,
            'mined_height': self.mined_height,
            'satoshis_locked': self.satoshis_locked,
            'locked_until_block': self.locked_until_block,
            'blocks_locked': self.blocks_locked,
            'lock_address': self.lock_address,
            'liked_transaction': self.endorsed_tx,
            'like_app': self.endorsing_app,
            'token_name': self.token_tick,
            'token_id': self.token_id,
            'amount_minted': self.amount_minted,
            'protocol': self.protocol_id,
        }


# ========================================================================
# Validation stages
# ========================================================================

def check_lock(output: LockOutput, config: ProtocolConfig) -> Optional[str]:
    """Stage A.  Returns the rejection reason, or None if the lock passes."""
    if output.lock is None:
        return 'no lock on output 0'
    if output.satoshis < config.min_satoshis_locked:
        return (f'{output.satoshis} sats locked, '
                f'minimum is {config.min_satoshis_locked}')
    # An unmined tx has no lock duration; fail closed.
    if output.mined_height is None:
        return 'lock duration unknown, transaction not mined'
    duration = output.lock.until - output.mined_height
    if duration < config.min_blocks_locked:
        return (f'locked for {duration} blocks, '
                f'minimum is {config.min_blocks_locked}')
    return None


def check_endorsement(output: EndorsementOutput) -> Optional[str]:
    """Stage B."""
    like = output.annotation
    if like is None:
        return 'no MAP annotation on output 1'
    if like.kind != LIKE_KIND:
        return f'annotation type is {like.kind!r}, not {LIKE_KIND!r}'
    if like.context != LIKE_CONTEXT:
        return f'annotation context is {like.context!r}, not {LIKE_CONTEXT!r}'
    if like.app is None or not like.app.strip():
        return 'annotation app is blank'
    return None


def check_mint_inscription(output: MintInscriptionOutput,
                           target_token_id: str) -> Optional[str]:
    """Stage C."""
    if output.satoshis != INSCRIPTION_SATOSHIS:
        return f'output 2 holds {output.satoshis} sats, not {INSCRIPTION_SATOSHIS}'
    insc = output.inscription
    if insc is None:
        return 'no inscription JSON on output 2'
    if insc.op != MintOp.MINT:
        return f'op is {insc.op!r}'
    if insc.protocol_id != PROTOCOL_ID:
        return f'protocol is {insc.protocol_id!r}'
    if insc.token_id != target_token_id:
        return f'token id {insc.token_id!r} is not the target'
    # No lower bound on the amount.
    if insc.amount > MAX_MINT_AMOUNT:
        return f'amount {insc.amount} exceeds {MAX_MINT_AMOUNT}'
    return None


def build_mint_record(txid: str,
                      lock: LockOutput,
                      endorsement: EndorsementOutput,
                      mint: MintInscriptionOutput,
                      config: ProtocolConfig,
                      target_token_id: str) -> MintRecord:
    """
    Assemble the MintRecord for descriptors that passed all three stages.

    ``blocks_locked`` counts the mined block itself, so it is
    ``until - mined_height + 1``; it is None for an unmined transaction.
    """
    until = lock.lock.until
    mined_height = lock.mined_height
    blocks_locked = None
    if mined_height is not None:
        blocks_locked = until - mined_height + 1

    return MintRecord(
        txid=txid,
        mined_height=mined_height,
        satoshis_locked=lock.satoshis,
        locked_until_block=until,
        blocks_locked=blocks_locked,
        lock_address=lock.lock.address,
        endorsed_tx=endorsement.annotation.referenced_tx,
        endorsing_app=endorsement.annotation.app,
        token_tick=config.tick or UNKNOWN_TICK,
        token_id=target_token_id,
        amount_minted=mint.inscription.amount,
        protocol_id=mint.inscription.protocol_id,
    )


def judge(txid: str,
          outputs: Sequence[Any],
          config: ProtocolConfig,
          target_token_id: str) -> Tuple[Optional[MintRecord], Optional[str], Optional[str]]:
    """
    Run the three stages over raw output payloads.

    Returns (record, None, None) on acceptance, or (None, stage, reason)
    for the first stage that rejects.  Pure: no I/O.
    """
    if len(outputs) != len(MINT_OUTPUTS):
        return None, Stage.RESOLVE, f'expected {len(MINT_OUTPUTS)} outputs, got {len(outputs)}'
    raw_lock, raw_like, raw_mint = outputs

    lock = parse_lock_output(raw_lock)
    if isinstance(lock, Invalid):
        return None, Stage.LOCK, lock.reason
    reason = check_lock(lock.value, config)
    if reason:
        return None, Stage.LOCK, reason

    like = parse_endorsement_output(raw_like)
    if isinstance(like, Invalid):
        return None, Stage.LIKE, like.reason
    reason = check_endorsement(like.value)
    if reason:
        return None, Stage.LIKE, reason

    mint = parse_mint_output(raw_mint)
    if isinstance(mint, Invalid):
        return None, Stage.MINT, mint.reason
    reason = check_mint_inscription(mint.value, target_token_id)
    if reason:
        return None, Stage.MINT, reason

    record = build_mint_record(txid, lock.value, like.value, mint.value,
                               config, target_token_id)
    return record, None, None


class MintValidator:
    """
    Validates mint candidates against the target token's deploy config.

    Holds no per-candidate state; the resolver is the only collaborator
    and is used read-only.
    """

    def __init__(self, resolver, metrics=None):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.resolver = resolver
        self.metrics = metrics

    async def process(self, txid: str,
                      config: ProtocolConfig,
                      target_token_id: str) -> Optional[MintRecord]:
        """Resolve the first three outputs of *txid* and validate them."""
        if config is None:
            self.logger.error(f'No protocol configuration, cannot check {txid}')
            return None

        self._count(MetricNames.CANDIDATES_TOTAL)
        start = time.monotonic()
        try:
            outputs = await self._resolve_outputs(txid)
            if outputs is None:
                self._reject(txid, Stage.RESOLVE, 'output lookup failed')
                return None
            return self.evaluate(txid, outputs, config, target_token_id)
        except Exception as e:
            self.logger.error(f'Error checking mint {txid}: {e!r}')
            return None
        finally:
            if self.metrics is not None:
                self.metrics.observe(MetricNames.VALIDATION_TIME, time.monotonic() - start)

    def evaluate(self, txid: str,
                 outputs: Sequence[Any],
                 config: ProtocolConfig,
                 target_token_id: str) -> Optional[MintRecord]:
        """Validate already-resolved output payloads."""
        record, stage, reason = judge(txid, outputs, config, target_token_id)
        if record is None:
            self._reject(txid, stage, reason)
            return None
        self._count(MetricNames.MINTS_FOUND)
        self.log_mint(record)
        return record

    async def _resolve_outputs(self, txid: str) -> Optional[list]:
        """Fetch outputs 0-2; None unless all three succeed."""
        results = await asyncio.gather(
            *(self.resolver.resolve_output(txid, vout) for vout in MINT_OUTPUTS),
            return_exceptions=True,
        )
        failed = False
        for vout, result in zip(MINT_OUTPUTS, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                self.logger.debug(f'{util.short_hash(txid)} output {vout}: {result}')
                failed = True
        if failed:
            self._count(MetricNames.RESOLUTION_FAILURES)
            return None
        return list(results)

    def _reject(self, txid: str, stage: str, reason: str):
        self.logger.debug(f'Rejected {util.short_hash(txid)} at {stage}: {reason}')
        self._count(MetricNames.REJECTIONS, labels={'stage': stage})

    def _count(self, name: str, labels: Dict[str, str] = None):
        if self.metrics is not None:
            self.metrics.inc_counter(name, labels=labels)

    def log_mint(self, record: MintRecord):
        """Log an accepted mint in full."""
        mined = record.mined_height if record.is_mined else 'not mined'
        blocks = record.blocks_locked if record.blocks_locked is not None else 'n/a'
        amount = (f'{record.amount_minted:,}'
                  if util.is_number(record.amount_minted) else record.amount_minted)
        self.logger.info(
            f'Found lock-like-mint {record.txid}\n'
            f'  lock: {record.satoshis_locked:,} sats, mined height {mined}, '
            f'locked until {record.locked_until_block}, blocks locked {blocks}, '
            f'address {record.lock_address}\n'
            f'  like: tx {record.endorsed_tx}, app {record.endorsing_app}\n'
            f'  mint: protocol {record.protocol_id}, ticker {record.token_tick}, '
            f'amount {amount}'
        )
