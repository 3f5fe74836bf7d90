"""
Mint persistence for LockMint

Inserts validated mints into the Supabase ``mints`` table through its
PostgREST endpoint.  The table is unique on ``txid``, so re-inserting a
mint is reported as a duplicate rather than an error.
"""

import asyncio
import enum

import aiohttp

from lockmint.lib import util

# PostgreSQL unique_violation
UNIQUE_VIOLATION = '23505'


class SaveResult(enum.Enum):
    INSERTED = 'inserted'
    DUPLICATE = 'duplicate'
    ERROR = 'error'


class SupabaseMintStore:
    """
    Writes MintRecords to Supabase.

    save() never raises; every outcome is a SaveResult.
    """

    def __init__(self, url: str, key: str, table: str = 'mints',
                 timeout: float = 30, session=None):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.endpoint = f'{url.rstrip("/")}/rest/v1/{table}'
        self.key = key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _headers(self):
        return {
            'apikey': self.key,
            'Authorization': f'Bearer {self.key}',
            'Content-Type': 'application/json',
            'Prefer': 'return=representation',
        }

    async def save(self, record) -> SaveResult:
        """Insert *record*; duplicates by txid are not an error."""
        try:
            async with self.session.post(self.endpoint, json=[record.to_row()],
                                         headers=self._headers()) as response:
                if 200 <= response.status < 300:
                    self.logger.info(f'Mint saved: {record.txid}')
                    return SaveResult.INSERTED
                body = await self._error_body(response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f'Failed to save mint {record.txid}: {e!r}')
            return SaveResult.ERROR

        if response.status == 409 or body.get('code') == UNIQUE_VIOLATION:
            self.logger.info(f'Mint already stored (txid: {record.txid})')
            return SaveResult.DUPLICATE

        self.logger.error(
            f'Error saving mint {record.txid}: HTTP {response.status} '
            f'{body.get("message") or body}'
        )
        return SaveResult.ERROR

    @staticmethod
    async def _error_body(response) -> dict:
        try:
            body = await response.json(content_type=None)
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
