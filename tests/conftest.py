"""
Pytest configuration for LockMint tests.

Puts the project root on sys.path so ``lockmint`` imports without an
install, and provides the canonical mint candidate used across tests:
a 10M sat lock mined at 810000 until 820990, a "MyApp" like, and a
1000-unit mint of the target token.
"""

import os
import sys

import pytest

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

TARGET_TOKEN_ID = 'a1b2c3d4' * 8 + '_0'
CANDIDATE_TXID = 'f0' * 32


@pytest.fixture
def target_token_id():
    return TARGET_TOKEN_ID


@pytest.fixture
def candidate_txid():
    return CANDIDATE_TXID


@pytest.fixture
def deploy_config():
    from lockmint.lib.protocol import ProtocolConfig
    return ProtocolConfig(
        tick='LLM',
        min_satoshis_locked=10_000_000,
        min_blocks_locked=990,
    )


@pytest.fixture
def deploy_json():
    """Deploy inscription JSON as published on chain."""
    return {
        'p': 'llm-21',
        'op': 'deploy',
        'tick': 'LLM',
        'sats': '10000000',
        'blocks': 990,
        'lim': '1000',
        'max': '21000000',
    }


@pytest.fixture
def raw_outputs():
    """Fresh raw payloads for outputs 0, 1 and 2 of a valid mint."""
    return [
        {
            'txid': CANDIDATE_TXID,
            'vout': 0,
            'satoshis': 10_000_000,
            'height': 810000,
            'data': {'lock': {'until': 820990, 'address': '1LockAddressXYZ'}},
        },
        {
            'txid': CANDIDATE_TXID,
            'vout': 1,
            'satoshis': 0,
            'height': 810000,
            'data': {'map': {
                'app': 'MyApp', 'type': 'like', 'context': 'tx', 'tx': 'def456',
            }},
        },
        {
            'txid': CANDIDATE_TXID,
            'vout': 2,
            'satoshis': 1,
            'height': 810000,
            'origin': {'data': {'insc': {'json': {
                'p': 'llm-21', 'op': 'mint', 'id': TARGET_TOKEN_ID, 'amt': 1000,
            }}}},
        },
    ]
