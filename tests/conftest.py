"""Shared fixtures for the chainscope test suite."""

import pytest

from chainscope.analysis.models import TransferRecord
from chainscope.config.settings import ForensicsConfig
from chainscope.utils.ledger_client import StaticLedgerSource

# Start of an hour-of-epoch bucket
HOUR_START = 1_699_999_200


def wallet(name: str) -> str:
    """Deterministic base58-valid 44 character address."""
    return (name + "1" * 44)[:44]


@pytest.fixture
def make_transfer():
    """Factory for TransferRecords with sequential signatures."""
    counter = {"n": 0}

    def _make(sender, receiver, amount=1.0, timestamp=HOUR_START, tx_type="TRANSFER",
              signature=None, token="SOL"):
        counter["n"] += 1
        return TransferRecord(
            signature=signature or f"sig-{counter['n']}",
            sender=sender,
            receiver=receiver,
            amount=amount,
            token=token,
            timestamp=timestamp,
            tx_type=tx_type,
        )

    return _make


@pytest.fixture
def static_ledger():
    return StaticLedgerSource()


@pytest.fixture(autouse=True)
def reset_config():
    ForensicsConfig.reset_instance()
    yield
    ForensicsConfig.reset_instance()
