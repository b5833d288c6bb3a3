"""Unit tests for wallet activity profiling and entity labelling.

Test Coverage:
- Wallet activity summary and first funding source
- Funding history shares
- Entity connection direction and risk
- Burst windows and activity pattern flags
- Combined activity risk
- Known-entity and heuristic labels
"""

import pytest

from chainscope.analysis.activity_profiler import (
    analyze_activity_patterns,
    analyze_entity_connections,
    analyze_wallet_activity,
    assess_activity_risk,
    build_funding_history,
    find_bursts,
    profile_wallet,
)
from chainscope.analysis.entity_labels import classify_transfers, fetch_entity_labels
from chainscope.exceptions import LedgerError

BINANCE = "7RCz8wb6WXxUhAigZXENr6W8fNB9e5k7kYnJpqJWrYXQ"
RAYDIUM = "J8yQQ95WitFXA1H5UYz3xbTeziEEJbLUCj6qdLgFRz1y"


@pytest.fixture
def wallet_transfers(make_transfer):
    return [
        make_transfer("S", "F", 5.0, timestamp=1000),
        make_transfer("F", "X", 1.0, timestamp=2000, tx_type="SWAP"),
        make_transfer("X", "F", 2.0, timestamp=3000),
        make_transfer(BINANCE, "F", 10.0, timestamp=4000),
    ]


class TestWalletActivity:
    """Test suite for the activity summary."""

    def test_summary(self, wallet_transfers):
        activity = analyze_wallet_activity("F", wallet_transfers)

        assert activity.total_transactions == 4
        assert activity.incoming_volume == pytest.approx(17.0)
        assert activity.outgoing_volume == pytest.approx(1.0)
        assert activity.first_active == 1000
        assert activity.last_active == 4000
        assert activity.funding_source["address"] == "S"
        assert activity.funding_source["amount"] == 5.0

    def test_counterparties_sorted_by_count(self, wallet_transfers):
        activity = analyze_wallet_activity("F", wallet_transfers)

        assert [i["address"] for i in activity.unique_interactions] == ["X", "S", BINANCE]
        assert activity.unique_interactions[2]["label"] == "Binance Hot Wallet"
        assert activity.transactions_by_type[0] == {"type": "TRANSFER", "count": 3}

    def test_dust_is_not_funding(self, make_transfer):
        activity = analyze_wallet_activity("F", [
            make_transfer("S", "F", 0.05, timestamp=1),
            make_transfer("T", "F", 1.0, timestamp=2),
        ])

        assert activity.funding_source["address"] == "T"


class TestFundingHistory:
    """Test suite for funding history."""

    def test_sources_by_share(self, wallet_transfers):
        history = build_funding_history("F", wallet_transfers)

        assert [t["source"] for t in history.transactions] == ["S", "X", BINANCE]
        assert history.transactions[0]["isInitial"] is True
        assert history.transactions[1]["isInitial"] is False
        assert history.total_amount == pytest.approx(17.0)
        top = history.primary_sources[0]
        assert top["address"] == BINANCE
        assert top["label"] == "Binance Hot Wallet"
        assert top["percentage"] == pytest.approx(10.0 / 17.0 * 100)

    def test_no_funding(self):
        history = build_funding_history("F", [])

        assert history.total_amount == 0.0
        assert history.primary_sources == []


class TestEntityConnections:
    """Test suite for per-counterparty connections."""

    def test_direction_and_risk(self, wallet_transfers):
        connections = analyze_entity_connections("F", wallet_transfers)

        assert [c.address for c in connections] == [BINANCE, "S", "X"]
        by_address = {c.address: c for c in connections}
        assert by_address["X"].direction == "bidirectional"
        assert by_address["X"].risk_score == pytest.approx(0.4)
        assert by_address["S"].direction == "incoming"
        assert by_address["S"].risk_score == pytest.approx(0.2)
        assert by_address[BINANCE].risk_score == 0.0

    def test_heavy_counterparty_capped(self, make_transfer):
        transfers = []
        for i in range(30):
            transfers.append(make_transfer("F", "H", 5.0, timestamp=i))
            transfers.append(make_transfer("H", "F", 5.0, timestamp=i))

        connection = analyze_entity_connections("F", transfers)[0]

        assert connection.total_transactions == 60
        assert connection.risk_score == 1.0


class TestActivityPatterns:
    """Test suite for timing profile and flags."""

    def test_burst_detection(self, make_transfer):
        burst = [make_transfer("F", "A", 1.0, timestamp=10_000 + i * 60) for i in range(6)]
        quiet = [make_transfer("F", "A", 1.0, timestamp=50_000 + i * 60) for i in range(5)]

        bursts = find_bursts(burst + quiet)

        assert len(bursts) == 1
        assert bursts[0].transaction_count == 6
        assert bursts[0].start == 10_000
        assert bursts[0].duration_minutes == pytest.approx(5.0)

    def test_flags(self, make_transfer):
        transfers = [make_transfer("F", "A", 2.0, timestamp=i * 60) for i in range(6)]

        patterns = analyze_activity_patterns(transfers)

        assert patterns.hourly_distribution[0] == 6
        # 1970-01-01 was a Thursday
        assert patterns.weekly_distribution[4] == 6
        assert patterns.avg_transaction_value == pytest.approx(2.0)
        assert patterns.active_hours == [0]
        assert [p["pattern"] for p in patterns.common_patterns] == [
            "Burst Activity",
            "Time-Restricted Activity",
            "Irregular Activity",
        ]

    def test_empty(self):
        patterns = analyze_activity_patterns([])

        assert patterns.common_patterns == []
        assert patterns.bursts == []


class TestActivityRisk:
    """Test suite for the combined activity risk."""

    def test_factors(self, wallet_transfers):
        profile = profile_wallet("F", wallet_transfers)

        factors = {f.name: f.score for f in profile.risk_factors}
        assert factors["Funding Sources"] == pytest.approx(2 / 3)
        assert factors["Entity Connections"] == pytest.approx((0.0 + 0.2 + 0.4) / 3)
        assert 0.0 <= profile.overall_score <= 1.0
        assert profile.to_dict()["riskAssessment"]["factors"][0]["name"] == "Funding Sources"

    def test_empty_inputs(self):
        factors = assess_activity_risk(
            build_funding_history("F", []),
            analyze_activity_patterns([]),
            [],
        )

        assert [f.score for f in factors] == [0.0, 0.0, 0.0]


class TestEntityLabels:
    """Test suite for entity labelling."""

    def test_heuristics(self, make_transfer):
        assert classify_transfers("W", [make_transfer("W", BINANCE)]).label == "Possible Exchange"
        assert classify_transfers("W", [make_transfer("W", "A", tx_type="SWAP")]).label == "DEX User"
        assert classify_transfers("W", [make_transfer("W", "A", tx_type="NFT_SALE")]).label == "NFT Trader"
        unknown = classify_transfers("W", [])
        assert (unknown.label, unknown.confidence) == ("Unknown", 0.5)

    @pytest.mark.asyncio
    async def test_known_entities_skip_fetch(self, static_ledger):
        labels = await fetch_entity_labels([RAYDIUM], static_ledger)

        assert labels[0].label == "Raydium"
        assert labels[0].confidence == 1.0
        assert labels[0].entity_type == "dex"
        assert static_ledger.calls == []

    @pytest.mark.asyncio
    async def test_fetch_failure_is_unknown(self):
        class FailingLedger:
            async def fetch_transfers(self, address, limit):
                raise LedgerError("down")

        labels = await fetch_entity_labels(["W"], FailingLedger())

        assert labels[0].to_dict() == {
            "address": "W", "label": "Unknown", "confidence": 0.0, "type": "wallet",
        }
