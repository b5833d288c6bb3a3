"""Integration tests for ForensicsOrchestrator.

Test Coverage:
- End-to-end analysis over an in-memory ledger
- Concurrent external risk assessment and fusion
- Multi-hop expansion through the pipeline
- Supersession cancels the previous request
- Recoverable boundary (ledger failure, malformed address, crash)
"""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest

from conftest import HOUR_START, wallet

from chainscope.analysis.models import PatternType
from chainscope.config.settings import ForensicsConfig
from chainscope.exceptions import LedgerError
from chainscope.orchestrator import ForensicsOrchestrator
from chainscope.utils.cancellation import CancellationToken
from chainscope.utils.ledger_client import StaticLedgerSource
from chainscope.utils.validation import ExternalRiskAssessment, ThreatRiskResponse

CENTER = wallet("Z")
OTHER = wallet("Y")


class GatedLedger:
    """Ledger whose fetches for selected addresses block until released."""

    def __init__(self, transfers):
        self.transfers = transfers
        self.blocked = set()
        self.release = asyncio.Event()

    async def fetch_transfers(self, address, limit):
        if address in self.blocked:
            await self.release.wait()
        return list(self.transfers.get(address, []))[:limit]


@pytest.fixture
def config():
    return ForensicsConfig(
        cluster_depth=1,
        transfer_limit=100,
        expansion_breadth=5,
        expansion_limit=20,
        cycle_max_depth=8,
        flow_window_days=30,
    )


@pytest.fixture
def risk_client():
    client = MagicMock()
    client.assess = AsyncMock(
        return_value=ExternalRiskAssessment(threat=ThreatRiskResponse(riskScore=0.5))
    )
    return client


@pytest.fixture
def center_transfers(make_transfer):
    return [
        make_transfer(CENTER, f"R{i}", 5.0, timestamp=HOUR_START + i * 60)
        for i in range(6)
    ]


class TestForensicsOrchestrator:
    """Test suite for the full pipeline."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, config, risk_client, center_transfers):
        ledger = StaticLedgerSource({CENTER: center_transfers})
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        result = await orchestrator.analyze(CENTER)

        assert result.ok
        assert result.clusters[0].cluster_id == "center"
        assert result.clusters[0].transaction_count == 6
        types = {p.pattern_type for p in result.patterns}
        assert PatternType.RAPID_SUCCESSION in types
        assert PatternType.WASH_TRADING in types
        assert result.risk_report.overall_score > 0
        assert result.external_risk.overall_score == pytest.approx(0.15)
        assert result.activity.activity.total_transactions == 6
        assert result.critical_paths.suspicious_patterns == []
        risk_client.assess.assert_awaited_once_with(CENTER)
        assert len(orchestrator.registry) == 0

    @pytest.mark.asyncio
    async def test_result_serializes(self, config, risk_client, center_transfers):
        ledger = StaticLedgerSource({CENTER: center_transfers})
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        data = (await orchestrator.analyze(CENTER)).to_dict()
        decoded = orjson.loads(orjson.dumps(data))

        assert decoded["status"] == "completed"
        assert decoded["transactionCount"] == 6
        assert decoded["clusters"][0]["id"] == "center"
        assert "suspicionScore" in decoded["clusters"][0]
        assert decoded["riskReport"]["factors"][0]["name"] == "Transaction Patterns"
        assert decoded["externalRisk"]["failedCategories"] == []

    @pytest.mark.asyncio
    async def test_without_external(self, config, risk_client, center_transfers):
        ledger = StaticLedgerSource({CENTER: center_transfers})
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        result = await orchestrator.analyze(CENTER, include_external=False)

        assert result.external_risk is None
        risk_client.assess.assert_not_called()

    @pytest.mark.asyncio
    async def test_expansion_depth(self, config, risk_client, center_transfers):
        ledger = StaticLedgerSource({CENTER: center_transfers})
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        await orchestrator.analyze(CENTER, depth=2, include_external=False)

        assert ledger.calls == [CENTER, "R0", "R1", "R2", "R3", "R4"]

    @pytest.mark.asyncio
    async def test_critical_paths_use_flow_window(self, config, risk_client, make_transfer):
        now = int(time.time())
        ledger = StaticLedgerSource({CENTER: [
            make_transfer(CENTER, "R0", 20.0, timestamp=now - 60),
            make_transfer(CENTER, "R1", 20.0, timestamp=now - 40 * 86400),
        ]})
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        result = await orchestrator.analyze(CENTER, include_external=False)

        assert result.critical_paths.high_value_paths == [(CENTER, "R0")]
        assert result.activity.activity.total_transactions == 2

    @pytest.mark.asyncio
    async def test_new_request_supersedes_previous(self, config, risk_client, center_transfers):
        ledger = GatedLedger({CENTER: center_transfers, OTHER: center_transfers[:2]})
        ledger.blocked.add(CENTER)
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        first = asyncio.ensure_future(
            orchestrator.analyze_safely(CENTER, requester="user", include_external=False)
        )
        await asyncio.sleep(0.01)
        second = await orchestrator.analyze_safely(
            OTHER, requester="user", include_external=False
        )
        first_result = await first

        assert first_result.status == "cancelled"
        assert first_result.clusters == []
        assert second.ok
        assert second.address == OTHER
        assert len(orchestrator.registry) == 0

    @pytest.mark.asyncio
    async def test_explicit_cancelled_token(self, config, risk_client, center_transfers):
        ledger = StaticLedgerSource({CENTER: center_transfers})
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)
        token = CancellationToken()
        token.cancel()

        result = await orchestrator.analyze_safely(CENTER, cancellation=token)

        assert result.status == "cancelled"
        assert ledger.calls == []


class TestRecoverableBoundary:
    """Test suite for analyze_safely failure handling."""

    @pytest.mark.asyncio
    async def test_ledger_failure(self, config, risk_client):
        ledger = MagicMock()
        ledger.fetch_transfers = AsyncMock(
            side_effect=LedgerError("ledger down", status_code=503, retryable=True)
        )
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        result = await orchestrator.analyze_safely(CENTER)

        assert result.status == "failed"
        assert result.error == "ledger down"
        assert result.retryable is True
        assert orchestrator.get_stats()["analyses_failed"] == 1

    @pytest.mark.asyncio
    async def test_ledger_failure_aborts_external_assessment(self, config):
        assessing = asyncio.Event()
        state = {"finished": False, "aborted": False}

        async def slow_assess(address):
            assessing.set()
            try:
                await asyncio.sleep(0.2)
                state["finished"] = True
            except asyncio.CancelledError:
                state["aborted"] = True
                raise
            return ExternalRiskAssessment()

        async def failing_fetch(address, limit):
            await assessing.wait()
            raise LedgerError("ledger down", status_code=503, retryable=True)

        risk_client = MagicMock()
        risk_client.assess = slow_assess
        ledger = MagicMock()
        ledger.fetch_transfers = failing_fetch
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        result = await orchestrator.analyze_safely(CENTER)
        await asyncio.sleep(0.3)

        assert result.status == "failed"
        assert state == {"finished": False, "aborted": True}

    @pytest.mark.asyncio
    async def test_ledger_failure_propagates_from_analyze(self, config, risk_client):
        ledger = MagicMock()
        ledger.fetch_transfers = AsyncMock(side_effect=LedgerError("ledger down"))
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        with pytest.raises(LedgerError):
            await orchestrator.analyze(CENTER, include_external=False)

    @pytest.mark.asyncio
    async def test_malformed_address(self, config, risk_client, static_ledger):
        orchestrator = ForensicsOrchestrator(config, ledger=static_ledger, risk_client=risk_client)

        result = await orchestrator.analyze_safely("0xnot-a-solana-address")

        assert result.status == "failed"
        assert result.retryable is False
        assert "Invalid" in result.error
        assert static_ledger.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_error_contained(self, config, risk_client):
        ledger = MagicMock()
        ledger.fetch_transfers = AsyncMock(side_effect=RuntimeError("boom"))
        orchestrator = ForensicsOrchestrator(config, ledger=ledger, risk_client=risk_client)

        result = await orchestrator.analyze_safely(CENTER, include_external=False)

        assert result.status == "failed"
        assert result.error == "RuntimeError: boom"
