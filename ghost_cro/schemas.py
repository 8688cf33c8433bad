"""
Report shapes shared by the analysis pipeline, storage and the API.

Python attributes are snake_case; JSON goes out in the camelCase the
dashboard reads (``frictionPoints``, ``abandonPoint`` ...).
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


Severity = Literal["critical", "high", "medium", "low"]
Effort = Literal["low", "medium", "high"]


class FrictionPoint(CamelModel):
    id: str
    title: str
    location: str
    impact: str  # "~23% abandonment"
    affected: str
    fix: str


class PersonaResult(CamelModel):
    id: str
    name: str
    demographics: str
    verdict: Literal["purchase", "abandon"]
    reasoning: str
    abandon_point: Optional[str] = None


class Recommendation(CamelModel):
    priority: int
    title: str
    impact: str
    effort: Effort
    description: str


class FunnelData(CamelModel):
    landed: int = Field(0, ge=0)
    cart: int = Field(0, ge=0)
    checkout: int = Field(0, ge=0)
    purchased: int = Field(0, ge=0)


class FrictionPoints(CamelModel):
    critical: List[FrictionPoint] = []
    high: List[FrictionPoint] = []
    medium: List[FrictionPoint] = []
    working: List[str] = []


class TestResult(CamelModel):
    __test__ = False

    id: str
    date: str
    url: str
    persona_mix: str
    score: int = Field(..., ge=0, le=100)
    previous_score: Optional[int] = None
    change: Optional[int] = None
    issues_found: int = 0
    status: Literal["completed", "running", "failed"] = "completed"
    friction_points: FrictionPoints = FrictionPoints()
    persona_results: List[PersonaResult] = []
    recommendations: List[Recommendation] = []
    funnel_data: FunnelData = FunnelData()


class CodeFix(CamelModel):
    type: Literal["css", "liquid", "html", "javascript"]
    target_file: str
    target_location: str
    optimized_code: str
    original_code: Optional[str] = None


class DeploymentResult(CamelModel):
    success: bool
    theme_id: Optional[int] = None
    theme_name: Optional[str] = None
    preview_url: Optional[str] = None
    assets_updated: List[str] = []
    error: Optional[str] = None
    error_code: Optional[str] = None
