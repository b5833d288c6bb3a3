"""
Entity Labels
=============

Directory of well-known Solana addresses and a heuristic labeller for
everything else, driven by an address's recent transfers.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog

from ..exceptions import LedgerError
from .models import TransferRecord

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class KnownEntity:
    label: str
    entity_type: str


KNOWN_ENTITIES: Dict[str, KnownEntity] = {
    "GUzaohfNuFbBqQTnPgPSNciv3aUvriXYjQduRE3ZkXDX": KnownEntity("Mango Markets", "dex"),
    "J8yQQ95WitFXA1H5UYz3xbTeziEEJbLUCj6qdLgFRz1y": KnownEntity("Raydium", "dex"),
    "USDH1SM1ojwWUga67PGrgFWUHibbjqMvuMaDkRJTgkX": KnownEntity("Hubble", "defi"),
    "So11111111111111111111111111111111111111112": KnownEntity("Wrapped SOL", "token"),
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": KnownEntity("USDC", "token"),
    "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263": KnownEntity("Raydium LP", "liquidity"),
    "7RCz8wb6WXxUhAigZXENr6W8fNB9e5k7kYnJpqJWrYXQ": KnownEntity("Binance Hot Wallet", "exchange"),
    "3h1zGmCwsRJnVk5BuRNnuBZpMYZy4zHEE1LGD3whYab9": KnownEntity("OKX Hot Wallet", "exchange"),
    "AHntTjf527AAt8PxWWxFKFwQPcqYEgJw4VB4eXkjvoaX": KnownEntity("Coinbase Hot Wallet", "exchange"),
}

EXCHANGE_ADDRESSES = frozenset(
    address for address, entity in KNOWN_ENTITIES.items() if entity.entity_type == "exchange"
)

SWAP_TYPES = frozenset({"SWAP", "SWAP_EXACT_IN", "SWAP_EXACT_OUT"})


@dataclass
class EntityLabel:
    address: str
    label: str
    confidence: float
    entity_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "label": self.label,
            "confidence": self.confidence,
            "type": self.entity_type,
        }


def label_of(address: str) -> Optional[str]:
    entity = KNOWN_ENTITIES.get(address)
    return entity.label if entity else None


def classify_transfers(address: str, transfers: Iterable[TransferRecord]) -> EntityLabel:
    """
    Guess what kind of actor an unknown address is.

    Exchange contact wins over swap activity, which wins over NFT activity.
    """
    is_exchange = is_dex = is_nft = False
    for tx in transfers:
        if tx.tx_type in SWAP_TYPES:
            is_dex = True
        if "NFT" in tx.tx_type:
            is_nft = True
        if tx.sender in EXCHANGE_ADDRESSES or tx.receiver in EXCHANGE_ADDRESSES:
            is_exchange = True

    if is_exchange:
        return EntityLabel(address, "Possible Exchange", 0.7, "exchange")
    if is_dex:
        return EntityLabel(address, "DEX User", 0.8, "trader")
    if is_nft:
        return EntityLabel(address, "NFT Trader", 0.8, "nft")
    return EntityLabel(address, "Unknown", 0.5, "wallet")


async def fetch_entity_labels(
    addresses: Sequence[str],
    ledger: Any,
    limit: int = 10,
) -> List[EntityLabel]:
    """
    Label addresses, fetching recent transfers for unknown ones.

    Known entities are labelled with full confidence. An address whose
    transfers cannot be fetched is labelled "Unknown" with zero confidence.
    Fetches run one at a time.
    """
    labels = []
    for address in addresses:
        entity = KNOWN_ENTITIES.get(address)
        if entity is not None:
            labels.append(EntityLabel(address, entity.label, 1.0, entity.entity_type))
            continue

        try:
            transfers = await ledger.fetch_transfers(address, limit)
        except LedgerError as e:
            logger.warning("Entity label fetch failed", address=address[:16] + "...", error=str(e))
            labels.append(EntityLabel(address, "Unknown", 0.0, "wallet"))
            continue

        labels.append(classify_transfers(address, transfers))

    return labels
