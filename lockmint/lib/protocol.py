"""
LLM-21 Lock-Like-Mint Protocol Support for LockMint

A mint under this protocol is a single transaction whose first three
outputs are, in order:

  0. a lock output encumbering satoshis until a future block height
  1. a social "like" annotation (MAP protocol) pointing at another tx
  2. a 1-sat inscription carrying the mint JSON:
       {"p": "llm-21", "op": "mint", "id": <deploy id>, "amt": <n>}

The token's deploy inscription publishes the thresholds every mint is
checked against:
       {"p": "llm-21", "op": "deploy", "tick": ..., "sats": ..., "blocks": ...}
"""

from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from lockmint.lib import util

# Protocol identifier, compared case-sensitively
PROTOCOL_ID = 'llm-21'

# Inscription operations
class MintOp:
    DEPLOY = 'deploy'
    MINT = 'mint'

# Like annotation constants (MAP protocol)
LIKE_KIND = 'like'
LIKE_CONTEXT = 'tx'

# Anti-abuse cap on a single mint, fixed by the protocol
MAX_MINT_AMOUNT = 1000

# Output positions inside a mint transaction
class OutputIndex:
    LOCK = 0
    LIKE = 1
    MINT = 2

MINT_OUTPUTS = (OutputIndex.LOCK, OutputIndex.LIKE, OutputIndex.MINT)

# Required satoshi value of the mint inscription output
INSCRIPTION_SATOSHIS = 1

UNKNOWN_TICK = 'Unknown'


class ProtocolConfig(BaseModel):
    """
    Deploy parameters of the target token.

    Resolved once at startup and shared read-only for the rest of the run.
    """
    model_config = ConfigDict(frozen=True)

    protocol_id: str = PROTOCOL_ID
    tick: str = UNKNOWN_TICK
    min_satoshis_locked: int = Field(ge=0)
    min_blocks_locked: int = Field(ge=0)
    per_mint_limit: Optional[int] = None
    max_supply: Optional[int] = None


def parse_deploy_config(payload: Any) -> Optional[ProtocolConfig]:
    """
    Build a ProtocolConfig from a deploy inscription JSON payload.

    Returns None when the payload is not a dict, names an op other than
    deploy, or its lock thresholds are missing, non-numeric or negative.
    An absent op is tolerated.
    """
    if not isinstance(payload, dict):
        return None
    if payload.get('op', MintOp.DEPLOY) != MintOp.DEPLOY:
        return None

    min_sats = util.to_int(payload.get('sats'))
    min_blocks = util.to_int(payload.get('blocks'))
    if min_sats is None or min_blocks is None:
        return None
    if min_sats < 0 or min_blocks < 0:
        return None

    tick = payload.get('tick')
    if not isinstance(tick, str) or not tick:
        tick = UNKNOWN_TICK

    protocol_id = payload.get('p')
    if not isinstance(protocol_id, str) or not protocol_id:
        protocol_id = PROTOCOL_ID

    return ProtocolConfig(
        protocol_id=protocol_id,
        tick=tick,
        min_satoshis_locked=min_sats,
        min_blocks_locked=min_blocks,
        per_mint_limit=util.to_int(payload.get('lim')),
        max_supply=util.to_int(payload.get('max')),
    )


def config_summary(config: ProtocolConfig) -> Dict[str, Any]:
    """Return the config as a plain dict for logging and the status API."""
    return config.model_dump()


def format_outpoint(txid: str, vout: int) -> str:
    """Format an outpoint string as txid_vout."""
    return f'{txid}_{vout}'
