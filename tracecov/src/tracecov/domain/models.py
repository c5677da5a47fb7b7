"""Domain models for tracecov."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Priority(str, Enum):
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @property
    def rank(self) -> int:
        """0 is most urgent."""
        return int(self.value[1])


class RiskLevel(str, Enum):
    critical = "Critical"
    high = "High"
    medium = "Medium"
    low = "Low"


RISK_BY_PRIORITY = {
    Priority.P0: RiskLevel.critical,
    Priority.P1: RiskLevel.high,
    Priority.P2: RiskLevel.medium,
    Priority.P3: RiskLevel.low,
}


def risk_for(priority: Priority) -> RiskLevel:
    return RISK_BY_PRIORITY[priority]


class ScenarioCategory(str, Enum):
    happy_case = "happy_case"
    edge_case = "edge_case"
    error_case = "error_case"
    security = "security"


class CoverageStatus(str, Enum):
    fully_covered = "FULLY_COVERED"
    partially_covered = "PARTIALLY_COVERED"
    not_covered = "NOT_COVERED"

    @property
    def rank(self) -> int:
        """Higher is better: FULLY > PARTIALLY > NOT."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    CoverageStatus.fully_covered: 2,
    CoverageStatus.partially_covered: 1,
    CoverageStatus.not_covered: 0,
}


class Confidence(str, Enum):
    high = "HIGH"
    medium = "MEDIUM"
    low = "LOW"


class GapSource(str, Enum):
    unit_test_gap = "unit-test-gap"
    completeness_gap = "completeness-gap"
    orphan_test = "orphan-test"
    orphan_api = "orphan-api"


class OrphanCategory(str, Enum):
    technical = "TECHNICAL"
    business = "BUSINESS"


class OrphanAction(str, Enum):
    none = "none"
    add_scenario = "add scenario"
    review = "review"


class APIDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    method: str
    endpoint: str
    description: Optional[str] = None
    parameters: Optional[List[Any]] = None
    request_body: Optional[Any] = Field(default=None, alias="requestBody")
    responses: Optional[Any] = None

    @property
    def key(self) -> str:
        return api_key(self.method, self.endpoint)


def api_key(method: str, endpoint: str) -> str:
    return f"{method.strip().upper()} {endpoint.strip()}"


class BaselineScenario(BaseModel):
    model_config = ConfigDict(frozen=True)

    scenario_id: str
    scenario: str
    category: ScenarioCategory
    priority: Priority
    api: str


class UnitTest(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    description: str
    file: str
    service: str
    api: Optional[str] = None


class ScenarioVerdict(BaseModel):
    """One matcher answer for one scenario."""

    model_config = ConfigDict(frozen=True)

    scenario_id: str
    status: CoverageStatus
    test_ids: List[str] = Field(default_factory=list)
    explanation: str = ""
    confidence: Optional[Confidence] = None


class OrphanCategorization(BaseModel):
    model_config = ConfigDict(frozen=True)

    test_id: str
    category: OrphanCategory
    subtype: str
    priority: Priority
    action: OrphanAction
    reason: str = ""


class CoverageMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    scenario: BaselineScenario
    status: CoverageStatus
    matched_test_ids: List[str] = Field(default_factory=list)
    explanation: str = ""
    confidence: Optional[Confidence] = None
    layer2_status: CoverageStatus
    degraded: bool = False

    @property
    def downgraded(self) -> bool:
        return self.status != self.layer2_status


class OrphanTest(BaseModel):
    model_config = ConfigDict(frozen=True)

    test: UnitTest
    api: str
    suggested_scenario: Optional[str] = None
    category: Optional[OrphanCategory] = None
    subtype: Optional[str] = None
    priority: Optional[Priority] = None
    action: Optional[OrphanAction] = None
    reason: Optional[str] = None
    categorized_by: Optional[str] = None


class OrphanAPI(BaseModel):
    model_config = ConfigDict(frozen=True)

    api: APIDefinition

    @property
    def key(self) -> str:
        return self.api.key


class MissingScenario(BaseModel):
    """A suggested scenario with no similar baseline entry."""

    model_config = ConfigDict(frozen=True)

    api: str
    scenario: str
    has_unit_test: bool


class Gap(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: GapSource
    api: str
    priority: Priority
    risk_level: RiskLevel
    scenario_id: Optional[str] = None
    test_id: Optional[str] = None
    description: str
    reason: str
    recommendation: str
    degraded: bool = False


class AnalysisFailure(BaseModel):
    """Recoverable failure recorded against one API or stage."""

    model_config = ConfigDict(frozen=True)

    api: Optional[str] = None
    stage: str
    error_type: str
    message: str


class ReportSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_scenarios: int
    fully_covered: int
    partially_covered: int
    not_covered: int
    downgraded: int
    coverage_percent: float
    total_tests: int
    unattributed_tests: int
    orphan_tests: int
    technical_orphans: int
    business_orphans: int
    orphan_apis: int
    gaps_by_priority: Dict[str, int]
    gaps_by_risk: Dict[str, int]
    gaps_by_source: Dict[str, int]
    degraded: bool
    degraded_apis: List[str] = Field(default_factory=list)


class CoverageReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    service: str
    generated_at: str
    matches: List[CoverageMatch]
    gaps: List[Gap]
    orphan_tests: List[OrphanTest]
    orphan_apis: List[OrphanAPI]
    missing_scenarios: List[MissingScenario] = Field(default_factory=list)
    summary: ReportSummary
    degraded: bool = False
    failures: List[AnalysisFailure] = Field(default_factory=list)
    cache_stats: Dict[str, Any] = Field(default_factory=dict)

    def gaps_at(self, priority: Priority) -> List[Gap]:
        return [gap for gap in self.gaps if gap.priority == priority]
