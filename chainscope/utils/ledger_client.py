"""
Ledger Source Clients
=====================

Suppliers of TransferRecord sequences for an address.

- LedgerSource: the protocol every supplier implements
- HeliusLedgerClient: Solana RPC signature listing plus Helius enhanced
  transaction parsing over httpx, paced and retried per instance
- StaticLedgerSource: in-memory transfers for offline analysis and tests

Only HTTP 429 is retried (exponential backoff, bounded attempts). Every
other failure surfaces as a non-retried LedgerError.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

import httpx
import orjson
import structlog

from ..analysis.models import TransferRecord
from ..config.settings import ForensicsConfig
from ..exceptions import LedgerError, RateLimitedError
from .rate_limiter import RequestPacer, retry_with_backoff

logger = structlog.get_logger(__name__)

LAMPORTS_PER_SOL = 1e9


class LedgerSource(Protocol):
    """Anything that can list the transfers of an address."""

    async def fetch_transfers(self, address: str, limit: int) -> List[TransferRecord]:
        ...


class HeliusLedgerClient:
    """
    Helius-backed ledger source.

    Example:
        client = HeliusLedgerClient(ForensicsConfig.get_instance())
        transfers = await client.fetch_transfers(wallet, limit=100)
        await client.close()
    """

    def __init__(
        self,
        config: Optional[ForensicsConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        pacer: Optional[RequestPacer] = None,
    ):
        self.config = config or ForensicsConfig.get_instance()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout_seconds),
        )
        self.pacer = pacer or RequestPacer(min_interval=self.config.rate_limit_delay_seconds)
        self.fetches = 0
        self.failures = 0

    async def __aenter__(self) -> "HeliusLedgerClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

    async def fetch_transfers(self, address: str, limit: int = 100) -> List[TransferRecord]:
        """
        Fetch up to ``limit`` transfers of ``address``, newest first.

        Raises:
            RateLimitedError: still rate limited after all retries
            LedgerError: any other fetch or parse failure
        """
        self.fetches += 1
        try:
            transfers = await retry_with_backoff(
                lambda: self._fetch_once(address, limit),
                self.pacer,
                max_retries=self.config.max_retries,
                initial_delay=self.config.initial_retry_delay_seconds,
            )
        except LedgerError as e:
            self.failures += 1
            logger.error(
                "Ledger fetch failed",
                address=address[:16] + "...",
                status_code=e.status_code,
                error=str(e),
            )
            raise

        logger.debug(
            "Transfers fetched",
            address=address[:16] + "...",
            transfers=len(transfers),
        )
        return transfers

    async def _fetch_once(self, address: str, limit: int) -> List[TransferRecord]:
        signatures = await self._get_signatures(address, limit)
        if not signatures:
            return []

        parsed = await self._post(
            f"{self.config.helius_api_url.rstrip('/')}/transactions",
            {"transactions": [s["signature"] for s in signatures]},
            params={"api-key": self.config.helius_api_key},
        )
        if not isinstance(parsed, list):
            raise LedgerError("unexpected transaction payload", retryable=False)

        transfers = []
        for info, tx in zip(signatures, parsed):
            record = self._parse(info, tx or {})
            if record is not None:
                transfers.append(record)
        return transfers

    async def _get_signatures(self, address: str, limit: int) -> List[Dict[str, Any]]:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getSignaturesForAddress",
            "params": [address, {"limit": limit, "commitment": "confirmed"}],
        }
        data = await self._post(self.config.helius_rpc_url, payload)
        if "error" in data:
            raise LedgerError(f"RPC error: {data['error']}", retryable=False)
        return data.get("result") or []

    async def _post(self, url: str, body: Any, params: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = await self.client.post(
                url,
                content=orjson.dumps(body),
                params=params,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise LedgerError(f"transport error: {e}", retryable=True) from e

        if response.status_code == 429:
            raise RateLimitedError()
        if response.status_code >= 400:
            raise LedgerError(
                f"ledger returned HTTP {response.status_code}",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )

        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise LedgerError("invalid JSON from ledger", retryable=False) from e

    @staticmethod
    def _parse(signature_info: Mapping[str, Any], tx: Mapping[str, Any]) -> Optional[TransferRecord]:
        """Turn one enhanced transaction into a TransferRecord (or None)."""
        sender, receiver, amount, token = "", "", 0.0, "SOL"

        native = tx.get("nativeTransfers") or []
        tokens = tx.get("tokenTransfers") or []
        if native:
            first = native[0]
            sender = first.get("fromUserAccount") or ""
            receiver = first.get("toUserAccount") or ""
            amount = float(first.get("amount") or 0) / LAMPORTS_PER_SOL
        elif tokens:
            first = tokens[0]
            sender = first.get("fromUserAccount") or ""
            receiver = first.get("toUserAccount") or ""
            amount = float(first.get("tokenAmount") or 0)
            token = first.get("symbol") or "Unknown"

        if not sender or not receiver:
            return None

        return TransferRecord(
            signature=signature_info.get("signature", ""),
            sender=sender,
            receiver=receiver,
            amount=amount,
            token=token,
            timestamp=int(signature_info.get("blockTime") or 0),
            tx_type=tx.get("type") or "UNKNOWN",
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        stats = self.pacer.get_stats()
        stats.update({"fetches": self.fetches, "failures": self.failures})
        return stats


class StaticLedgerSource:
    """In-memory ledger: address -> transfers."""

    def __init__(self, transfers: Optional[Mapping[str, Iterable[TransferRecord]]] = None):
        self._transfers: Dict[str, List[TransferRecord]] = {
            address: list(records) for address, records in (transfers or {}).items()
        }
        self.calls: List[str] = []

    def add(self, address: str, records: Iterable[TransferRecord]):
        self._transfers.setdefault(address, []).extend(records)

    async def fetch_transfers(self, address: str, limit: int = 100) -> List[TransferRecord]:
        self.calls.append(address)
        return list(self._transfers.get(address, []))[:limit]
