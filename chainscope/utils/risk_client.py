"""
External Risk Client
====================

Fetches the five external risk categories for an address:

    threat    -> POST /threat_risks
    sanction  -> POST /sanction_checks
    approval  -> POST /approval_risks
    exposure  -> POST /exposure_risk
    contract  -> POST /contract_risk

A failed category (transport error, non-2xx status, invalid payload) is
logged and replaced with its neutral zero-risk default. The five calls run
concurrently and are joined before fusion.
"""

import asyncio
from typing import Any, Dict, Optional, Tuple, Type

import httpx
import orjson
import structlog
from pydantic import BaseModel, ValidationError

from ..config.settings import ForensicsConfig
from ..exceptions import ExternalRiskUnavailable
from .validation import (
    ApprovalRiskResponse,
    ContractRiskResponse,
    ExposureRiskResponse,
    ExternalRiskAssessment,
    SanctionCheckResponse,
    ThreatRiskResponse,
)

logger = structlog.get_logger(__name__)

ENDPOINTS: Dict[str, Tuple[str, Type[BaseModel]]] = {
    "threat": ("/threat_risks", ThreatRiskResponse),
    "sanction": ("/sanction_checks", SanctionCheckResponse),
    "approval": ("/approval_risks", ApprovalRiskResponse),
    "exposure": ("/exposure_risk", ExposureRiskResponse),
    "contract": ("/contract_risk", ContractRiskResponse),
}


class ExternalRiskClient:
    """
    Client for the external risk-category service.

    Features:
    - Bearer-token authentication
    - Concurrent category fetches
    - Per-category failure isolation with neutral defaults
    """

    def __init__(
        self,
        config: Optional[ForensicsConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or ForensicsConfig.get_instance()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=self.config.risk_api_url,
            timeout=httpx.Timeout(self.config.request_timeout_seconds),
        )
        self.headers = {
            "Authorization": f"Bearer {self.config.risk_api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self.failures: Dict[str, int] = {name: 0 for name in ENDPOINTS}

    async def __aenter__(self) -> "ExternalRiskClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

    async def _fetch(self, category: str, address: str) -> BaseModel:
        """
        Fetch and validate one category.

        Raises:
            ExternalRiskUnavailable: on any transport, status or payload failure
        """
        path, model = ENDPOINTS[category]
        try:
            response = await self.client.post(
                path,
                content=orjson.dumps({"address": address}),
                headers=self.headers,
            )
        except httpx.HTTPError as e:
            raise ExternalRiskUnavailable(category, f"transport error: {e}") from e

        if response.status_code >= 400:
            raise ExternalRiskUnavailable(category, f"HTTP {response.status_code}")

        try:
            return model.model_validate(orjson.loads(response.content))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise ExternalRiskUnavailable(category, "invalid payload") from e

    async def _fetch_or_default(self, category: str, address: str) -> Tuple[BaseModel, bool]:
        try:
            return await self._fetch(category, address), True
        except ExternalRiskUnavailable as e:
            self.failures[category] += 1
            logger.warning(
                "External risk category unavailable",
                category=category,
                address=address[:16] + "...",
                reason=e.reason,
            )
            return ENDPOINTS[category][1](), False

    async def get_threat_risks(self, address: str) -> ThreatRiskResponse:
        result, _ = await self._fetch_or_default("threat", address)
        return result

    async def get_sanction_checks(self, address: str) -> SanctionCheckResponse:
        result, _ = await self._fetch_or_default("sanction", address)
        return result

    async def get_approval_risks(self, address: str) -> ApprovalRiskResponse:
        result, _ = await self._fetch_or_default("approval", address)
        return result

    async def get_exposure_risk(self, address: str) -> ExposureRiskResponse:
        result, _ = await self._fetch_or_default("exposure", address)
        return result

    async def get_contract_risk(self, address: str) -> ContractRiskResponse:
        result, _ = await self._fetch_or_default("contract", address)
        return result

    async def assess(self, address: str) -> ExternalRiskAssessment:
        """
        Fetch all five categories concurrently.

        Returns:
            ExternalRiskAssessment listing the categories that fell back
            to defaults. Never raises for category failures.
        """
        names = list(ENDPOINTS)
        results = await asyncio.gather(
            *(self._fetch_or_default(name, address) for name in names)
        )

        payloads: Dict[str, Any] = {}
        failed = []
        for name, (payload, ok) in zip(names, results):
            payloads[name] = payload
            if not ok:
                failed.append(name)

        logger.info(
            "External risk assessment complete",
            address=address[:16] + "...",
            failed=failed,
        )
        return ExternalRiskAssessment(failed_categories=failed, **payloads)

    def get_stats(self) -> Dict[str, Any]:
        return {"failures": dict(self.failures)}
