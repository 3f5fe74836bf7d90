"""
Output Descriptor Schema for LockMint

Turns the loosely-typed JSON returned by the ordinals API for each of the
three mint outputs into typed, already-checked descriptors.  Every parse
returns a tagged result, either ``Valid(descriptor)`` or ``Invalid(reason)``,
so the validation stages never probe nested optional fields themselves.

Absent sub-objects (no lock, no MAP annotation, no inscription JSON) are a
normal condition and come back as ``None`` fields on a Valid descriptor.
Wrong JSON types and missing required scalars are Invalid.  Whole numbers
written as floats (``1.0``) count as integers, the way JSON numbers compare
upstream; fractional or non-finite values do not.

Raw payload layout (ordinals API, ``/api/inscriptions/{txid}_{vout}``):

    output 0:  {"satoshis": n, "height": h, "data": {"lock": {"until": u, "address": a}}}
    output 1:  {"data": {"map": {"type": "like", "context": "tx", "app": s, "tx": txid}}}
    output 2:  {"satoshis": 1, "origin": {"data": {"insc": {"json": {...}}}}}
"""

import math
from dataclasses import dataclass
from typing import Annotated, Any, Generic, Optional, TypeVar, Union

from pydantic import (
    BaseModel, BeforeValidator, ConfigDict, StrictFloat, StrictInt, StrictStr,
    ValidationError, field_validator,
)

T = TypeVar('T')


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    reason: str


Parsed = Union[Valid, Invalid]


def _whole_float_to_int(value):
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# Satoshi counts and block heights
WholeNumber = Annotated[StrictInt, BeforeValidator(_whole_float_to_int)]


class _Descriptor(BaseModel):
    model_config = ConfigDict(frozen=True)


class LockTerms(_Descriptor):
    until: WholeNumber
    address: Optional[StrictStr] = None


class LockOutput(_Descriptor):
    """Output 0: the locked coins."""
    satoshis: WholeNumber
    mined_height: Optional[WholeNumber] = None
    lock: Optional[LockTerms] = None


class LikeAnnotation(_Descriptor):
    kind: Optional[StrictStr] = None
    context: Optional[StrictStr] = None
    app: Optional[StrictStr] = None
    referenced_tx: Optional[StrictStr] = None


class EndorsementOutput(_Descriptor):
    """Output 1: the MAP like annotation."""
    annotation: Optional[LikeAnnotation] = None


class MintInscription(_Descriptor):
    op: StrictStr
    protocol_id: StrictStr
    token_id: StrictStr
    amount: Union[StrictInt, StrictFloat]

    @field_validator('amount')
    @classmethod
    def _finite_amount(cls, value):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError('amount must be a finite number')
        return value


class MintInscriptionOutput(_Descriptor):
    """Output 2: the 1-sat mint inscription."""
    satoshis: WholeNumber
    inscription: Optional[MintInscription] = None


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------

def _dig(payload: Any, *path: str) -> Any:
    """Walk nested dicts, returning None as soon as a step is missing."""
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _reason(err: ValidationError) -> str:
    first = err.errors()[0]
    loc = '.'.join(str(part) for part in first.get('loc', ())) or 'payload'
    return f'{loc}: {first.get("msg", "invalid")}'


def _validate(model, fields) -> Parsed:
    try:
        return Valid(model.model_validate(fields))
    except ValidationError as e:
        return Invalid(_reason(e))


# ------------------------------------------------------------------
# Public parsers
# ------------------------------------------------------------------

def parse_lock_output(payload: Any) -> Parsed:
    """Parse output 0 of a mint candidate."""
    if not isinstance(payload, dict):
        return Invalid('output 0 payload is not an object')
    return _validate(LockOutput, {
        'satoshis': payload.get('satoshis'),
        'mined_height': payload.get('height'),
        'lock': _dig(payload, 'data', 'lock'),
    })


def parse_endorsement_output(payload: Any) -> Parsed:
    """Parse output 1 of a mint candidate."""
    if not isinstance(payload, dict):
        return Invalid('output 1 payload is not an object')
    like_map = _dig(payload, 'data', 'map')
    if like_map is None:
        return Valid(EndorsementOutput())
    if not isinstance(like_map, dict):
        return Invalid('data.map: not an object')
    return _validate(EndorsementOutput, {
        'annotation': {
            'kind': like_map.get('type'),
            'context': like_map.get('context'),
            'app': like_map.get('app'),
            'referenced_tx': like_map.get('tx'),
        },
    })


def parse_mint_output(payload: Any) -> Parsed:
    """Parse output 2 of a mint candidate."""
    if not isinstance(payload, dict):
        return Invalid('output 2 payload is not an object')
    insc_json = _dig(payload, 'origin', 'data', 'insc', 'json')
    inscription = None
    if insc_json is not None:
        if not isinstance(insc_json, dict):
            return Invalid('origin.data.insc.json: not an object')
        inscription = {
            'op': insc_json.get('op'),
            'protocol_id': insc_json.get('p'),
            'token_id': insc_json.get('id'),
            'amount': insc_json.get('amt'),
        }
    return _validate(MintInscriptionOutput, {
        'satoshis': payload.get('satoshis'),
        'inscription': inscription,
    })


def parse_inscription_json(payload: Any) -> Optional[Any]:
    """Return ``data.insc.json`` from an inscription lookup, if any."""
    return _dig(payload, 'data', 'insc', 'json')
