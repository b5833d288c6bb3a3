"""Input validation and external payload models for chainscope."""

import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# Solana wallet address validation
SOLANA_ADDRESS_PATTERN = re.compile(r'^[1-9A-HJ-NP-Za-km-z]{32,44}$')


def _bounded(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class WalletAddress(BaseModel):
    """Validated Solana wallet address."""
    address: str = Field(..., min_length=32, max_length=44)

    @field_validator('address')
    @classmethod
    def validate_address(cls, v):
        if not SOLANA_ADDRESS_PATTERN.match(v):
            raise ValueError(f'Invalid Solana wallet address: {v}')
        return v


def validate_wallet_address(address: str) -> str:
    """
    Validate a requested wallet address.

    Raises:
        ValueError: ``address`` is not a base58 Solana address
    """
    try:
        return WalletAddress(address=address).address
    except ValidationError as e:
        raise ValueError(f"Invalid Solana wallet address: {address}") from e


# ============================================================================
# External risk payloads
# ============================================================================

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class ThreatDetail(_Payload):
    category: str = ''
    description: str = ''
    severity: str = 'low'


class ThreatRiskResponse(_Payload):
    risk_score: float = Field(0.0, alias='riskScore')
    flags: List[str] = Field(default_factory=list)
    details: List[ThreatDetail] = Field(default_factory=list)

    @field_validator('risk_score')
    @classmethod
    def clamp_score(cls, v):
        return _bounded(v)


class SanctionDetail(_Payload):
    source: str = ''
    reason: str = ''
    date: str = ''


class SanctionCheckResponse(_Payload):
    is_sanctioned: bool = Field(False, alias='isSanctioned')
    details: List[SanctionDetail] = Field(default_factory=list)

    @property
    def risk_score(self) -> float:
        return 1.0 if self.is_sanctioned else 0.0


class ApprovalEntry(_Payload):
    spender: str = ''
    risk_score: float = Field(0.0, alias='riskScore')
    flags: List[str] = Field(default_factory=list)

    @field_validator('risk_score')
    @classmethod
    def clamp_score(cls, v):
        return _bounded(v)


class ApprovalRiskResponse(_Payload):
    approvals: List[ApprovalEntry] = Field(default_factory=list)

    @property
    def risk_score(self) -> float:
        """Mean per-approval risk (0 without approvals)."""
        total = sum(a.risk_score for a in self.approvals)
        return total / max(len(self.approvals), 1)


class RiskExposure(_Payload):
    address: str = ''
    risk_score: float = Field(0.0, alias='riskScore')
    type: str = ''


class ExposureRiskResponse(_Payload):
    exposure_score: float = Field(0.0, alias='exposureScore')
    risk_exposures: List[RiskExposure] = Field(default_factory=list, alias='riskExposures')

    @field_validator('exposure_score')
    @classmethod
    def clamp_score(cls, v):
        return _bounded(v)

    @property
    def risk_score(self) -> float:
        return self.exposure_score


class ContractFinding(_Payload):
    category: str = ''
    findings: List[str] = Field(default_factory=list)
    severity: str = 'low'


class ContractRiskResponse(_Payload):
    risk_score: float = Field(0.0, alias='riskScore')
    flags: List[str] = Field(default_factory=list)
    analysis: List[ContractFinding] = Field(default_factory=list)

    @field_validator('risk_score')
    @classmethod
    def clamp_score(cls, v):
        return _bounded(v)


class ExternalRiskAssessment(_Payload):
    """Joined results of the five risk-category calls."""
    threat: ThreatRiskResponse = Field(default_factory=ThreatRiskResponse)
    sanction: SanctionCheckResponse = Field(default_factory=SanctionCheckResponse)
    approval: ApprovalRiskResponse = Field(default_factory=ApprovalRiskResponse)
    exposure: ExposureRiskResponse = Field(default_factory=ExposureRiskResponse)
    contract: ContractRiskResponse = Field(default_factory=ContractRiskResponse)
    failed_categories: List[str] = Field(default_factory=list)
