from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    NONE = "none"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class PipelineState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    CHECKING_INTERACTIONS = "checking_interactions"
    RESULT = "result"
    ERROR = "error"


class ErrorKind(str, Enum):
    NO_CONNECTIVITY = "no_connectivity"
    UNREADABLE = "unreadable"
    GENERIC = "generic"


class PipelineStage(str, Enum):
    CONNECTIVITY = "connectivity"
    IDENTIFICATION = "identification"
    INTERACTION_CHECK = "interaction_check"


class MedicineDetails(BaseModel):
    """Free-form details about an identified medicine, passed through as-is."""

    model_config = ConfigDict(extra="allow")

    dosage: str = ""
    usage: str = ""
    warnings: list[str] = []
    side_effects: list[str] = []
    active_ingredients: list[str] = []


class MedicineIdentification(BaseModel):
    name: str
    details: MedicineDetails = Field(default_factory=MedicineDetails)


class InteractionOutcome(BaseModel):
    has_conflict: bool = False
    severity: Severity = Severity.NONE
    explanation: str = ""
    recommendation: str = ""

    @classmethod
    def no_conflict(cls) -> "InteractionOutcome":
        return cls(has_conflict=False, severity=Severity.NONE)


class AnalysisResult(BaseModel):
    name: str
    details: MedicineDetails
    interaction: InteractionOutcome


class PipelineError(BaseModel):
    kind: ErrorKind
    stage: PipelineStage
    title: str
    message: str


class PipelineSnapshot(BaseModel):
    run_id: int
    state: PipelineState
    identification: MedicineIdentification | None = None
    result: AnalysisResult | None = None
    error: PipelineError | None = None


class ScanRequest(BaseModel):
    image_base64: str = Field(..., min_length=1)


class ReminderFromResult(BaseModel):
    dosage: str | None = None
