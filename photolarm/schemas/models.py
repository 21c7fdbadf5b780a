import uuid
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from photolarm.utils.clock import parse_hhmm, parse_iso

PlanMode = Literal["fixed", "flexible"]
Domain = Literal[
    "medication", "appointment", "treatment", "measurement", "lifestyle",
    "cooking", "fitness", "habit", "work", "event", "other",
]
Category = Literal["health", "cooking", "fitness", "habit", "appointment", "class", "work", "event", "other"]
AnchorType = Literal["now", "user_selected", "recommended"]
ConstraintPriority = Literal["required", "preferred", "optional"]
RepeatFrequency = Literal["daily", "weekly", "monthly"]
ActionType = Literal["CREATE_ALARMS", "CANCEL_ALARMS"]
NextStep = Literal["NEED_APPROVAL", "DONE"]

PRIORITY_RANK: Dict[str, int] = {"required": 3, "preferred": 2, "optional": 1}


def _plan_id() -> str:
    return "plan_" + uuid.uuid4().hex[:12]


def _check_iso(v: str) -> str:
    parse_iso(v)
    return v


def _check_hhmm(v: str) -> str:
    parse_hhmm(v)
    return v


IsoDatetime = Annotated[str, AfterValidator(_check_iso)]
TimeOfDay = Annotated[str, AfterValidator(_check_hhmm)]  # "HH:mm", 24h


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

class Constraint(BaseModel):
    type: str = Field(..., description="with_meal, before_meal, after_meal, empty_stomach, avoid_sleep, upon_waking, before_sleep, specific_time")
    value: Optional[str] = None  # e.g. "breakfast", "22:00"
    priority: ConstraintPriority = "required"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self.priority]


class RepeatRule(BaseModel):
    enabled: bool = False
    frequency: Optional[RepeatFrequency] = None
    until: Optional[IsoDatetime] = None


class FixedEvent(BaseModel):
    start_datetime_iso: IsoDatetime
    timezone: str = "local"
    title: str
    description: Optional[str] = None
    alert_before_minutes: Optional[int] = None
    repeat: Optional[RepeatRule] = None  # carried along, never expanded


@dataclass(frozen=True)
class IntervalHours:
    hours: float


@dataclass(frozen=True)
class TimesPerDay:
    count: int


@dataclass(frozen=True)
class TimesOfDay:
    times: tuple


@dataclass(frozen=True)
class OncePerDay:
    pass


Cadence = Union[IntervalHours, TimesPerDay, TimesOfDay, OncePerDay]


class FlexiblePatternItem(BaseModel):
    interval_hours: Optional[float] = Field(default=None, gt=0)
    times_per_day: Optional[int] = Field(default=None, gt=0)
    times_of_day: Optional[List[TimeOfDay]] = None

    duration_days: Optional[int] = Field(default=None, gt=0)
    duration_doses: Optional[int] = Field(default=None, gt=0)

    title: str
    description: Optional[str] = None
    dosage: Optional[str] = None  # "1 tablet", "5ml"

    constraints: List[Constraint] = Field(default_factory=list)

    @property
    def cadence(self) -> Cadence:
        """First present among interval_hours, times_per_day, times_of_day."""
        if self.interval_hours is not None:
            return IntervalHours(self.interval_hours)
        if self.times_per_day is not None:
            return TimesPerDay(self.times_per_day)
        if self.times_of_day:
            return TimesOfDay(tuple(self.times_of_day))
        return OncePerDay()


class PatternHints(BaseModel):
    prefer_morning: Optional[bool] = None
    prefer_evening: Optional[bool] = None
    avoid_sleep_interruption: bool = True
    first_dose_urgent: Optional[bool] = None


class FlexiblePattern(BaseModel):
    items: List[FlexiblePatternItem] = Field(default_factory=list)
    hints: Optional[PatternHints] = None


class Plan(BaseModel):
    id: str = Field(default_factory=_plan_id)
    mode: PlanMode
    domain: Domain = "other"
    category: Category = "other"
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    evidence: str = ""
    questions_for_user: Optional[List[str]] = None

    # exactly one of these is expected, matching `mode` (checked by the generator)
    fixed_events: Optional[List[FixedEvent]] = None
    flexible_pattern: Optional[FlexiblePattern] = None

    notes: Optional[str] = None
    warnings: Optional[List[str]] = None


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

class Anchor(BaseModel):
    type: AnchorType
    datetime: IsoDatetime
    timezone: str = "local"
    reason: Optional[str] = None


class Alarm(BaseModel):
    id: str
    plan_id: str

    datetime: str
    timezone: str = "local"

    title: str
    body: str = ""

    enabled: bool = True
    snoozeable: bool = True
    alert_before_minutes: Optional[int] = None

    triggered: bool = False
    completed: bool = False
    completed_at: Optional[str] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)


class Schedule(BaseModel):
    id: str
    plan_id: str
    anchor: Optional[Anchor] = None
    alarms: List[Alarm] = Field(default_factory=list)
    created_at: str
    updated_at: str


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

class SleepWindow(BaseModel):
    start: TimeOfDay
    end: TimeOfDay


class MealTimes(BaseModel):
    breakfast: Optional[TimeOfDay] = None
    lunch: Optional[TimeOfDay] = None
    dinner: Optional[TimeOfDay] = None

    def configured(self) -> List[str]:
        """Configured meals in breakfast, lunch, dinner order."""
        return [t for t in (self.breakfast, self.lunch, self.dinner) if t]


class UserPreferences(BaseModel):
    sleep_window: Optional[SleepWindow] = None
    night_shift_mode: bool = False
    meal_times: Optional[MealTimes] = None

    do_not_disturb: bool = False
    allow_sleep_interruptions: bool = False

    timezone: str = "local"
    alarm_sound: str = "alarm1.mp3"


# ---------------------------------------------------------------------------
# Learned medication patterns
# ---------------------------------------------------------------------------

class ExtractedMedicationValues(BaseModel):
    medication_name: str
    frequency_hours: float
    duration_days: int
    dosage: Optional[str] = None
    administration: Optional[str] = None


class LearningMetadata(BaseModel):
    confirmations: int = 0
    corrections: int = 0
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    first_seen: str
    last_validated: str
    user_id: Optional[str] = None

    @property
    def total(self) -> int:
        return self.confirmations + self.corrections


class LearnedMedicationPattern(BaseModel):
    id: str
    raw_phrase: str
    normalized_phrase: str
    tokens: List[str]
    extracted: ExtractedMedicationValues
    learning: LearningMetadata
    pattern_signature: str
    similarity_threshold: float = Field(default=0.75, ge=0.0, le=1.0)


class PatternMatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pattern: LearnedMedicationPattern
    similarity: float
    is_reliable: bool = Field(default=True, alias="isReliable")


class LearningMetrics(BaseModel):
    total_validations: int = 0
    last_sync: Optional[str] = None


class LearningStats(BaseModel):
    total_patterns: int
    total_validations: int
    avg_confidence: float
    most_reliable_patterns: List[LearnedMedicationPattern]
    recent_validations: int


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------

class GenerateScheduleRequest(BaseModel):
    plan: Plan
    anchor: Optional[Anchor] = None
    preferences: Optional[UserPreferences] = None
    current_time: Optional[IsoDatetime] = None


class RecommendAnchorRequest(BaseModel):
    plan: Plan
    preferences: Optional[UserPreferences] = None
    current_time: Optional[IsoDatetime] = None


class SchedulePlanRequest(GenerateScheduleRequest):
    pass


class SchedulePlanResponse(BaseModel):
    plan_id: str
    schedule: Schedule
    anchor: Optional[Anchor] = None
    next_step: Optional[NextStep] = None


class ApproveEdits(BaseModel):
    alarm_time_overrides: Dict[str, str] = Field(default_factory=dict)  # alarm_id -> ISO datetime
    disabled_alarm_ids: List[str] = Field(default_factory=list)


class ApproveRequest(BaseModel):
    plan_id: str
    approved_action_types: List[ActionType] = Field(default_factory=list)
    edits: Optional[ApproveEdits] = None


class ToolResult(BaseModel):
    ok: bool
    mock: bool = True
    details: Dict[str, Any] = Field(default_factory=dict)


class ApproveResponse(BaseModel):
    schedule: Schedule
    executed: Dict[str, ToolResult]
    next_step: Optional[NextStep] = "DONE"


class ValidationRequest(BaseModel):
    phrase: str
    extracted: ExtractedMedicationValues
    was_confirmed: bool


class ValidationResponse(BaseModel):
    ok: bool = True
    total_patterns: int
    total_validations: int


class MatchRequest(BaseModel):
    phrase: str


class ImportPatternsRequest(BaseModel):
    payload: str  # JSON produced by /patterns/export
