"""Persisted records: Job Record, Decision Record, Dispatch Marker, Inbox Item.

Records are stored as camelCase JSON. Python attributes are snake_case and
mapped through aliases; unknown keys are kept so a read/re-write cycle never
drops fields written by another actor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping, Union

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

logger = structlog.get_logger(__name__)


class Phase(str, Enum):
    INTAKE = "INTAKE"
    CUSTOMER_DISCOVERY = "CUSTOMER_DISCOVERY"
    PRODUCT = "PRODUCT"
    DESIGN = "DESIGN"
    BUILD = "BUILD"
    QA = "QA"
    DEPLOY = "DEPLOY"
    HUMAN_REVIEW = "HUMAN_REVIEW"
    DONE = "DONE"
    FAILED = "FAILED"


PHASE_VALUES = frozenset(p.value for p in Phase)


class AgentRole(str, Enum):
    DESIGNER = "designer"
    CODER = "coder"
    QA = "qa"
    DEPLOY = "deploy"
    CUSTOMER = "customer"
    PRODUCT = "product"


ROLE_VALUES = frozenset(r.value for r in AgentRole)


class DecisionAction(str, Enum):
    SET_PHASE = "SET_PHASE"
    ASSIGN_AGENT = "ASSIGN_AGENT"


class HistoryEventType(str, Enum):
    INTAKE = "INTAKE"
    CONFIRMED = "CONFIRMED"
    SWARM_STARTED = "SWARM_STARTED"
    ARTIFACT_WRITTEN = "ARTIFACT_WRITTEN"
    PHASE_SET = "PHASE_SET"
    SWARM_COMPLETED = "SWARM_COMPLETED"
    SWARM_ERROR = "SWARM_ERROR"
    ASSIGN_AGENT = "ASSIGN_AGENT"
    SLACK_CHANNEL_CREATED = "SLACK_CHANNEL_CREATED"


class MarkerStatus(str, Enum):
    QUEUED = "QUEUED"
    DISPATCHED = "DISPATCHED"
    DONE = "DONE"
    FAILED = "FAILED"


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class HistoryEvent(_Record):
    """One history entry. `{type, at, payload}` entries are read as `{event, ts, data}`."""

    ts: str = Field(validation_alias=AliasChoices("ts", "at"))
    event: str = Field(validation_alias=AliasChoices("event", "type"))
    data: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("data", "payload"))


class JobRecord(_Record):
    """One idea's journey. Also the shape of a Pending Job."""

    job_id: str = Field(alias="jobId")
    created_at: str = Field(alias="createdAt")
    phase: str = Phase.INTAKE.value
    idea: str = ""
    code: str | None = None
    title: str | None = None
    requester: str | None = None
    artifacts: dict[str, str] = Field(default_factory=dict)
    history: list[HistoryEvent] = Field(default_factory=list)
    swarm: dict[str, Any] = Field(default_factory=dict)
    slack: dict[str, Any] | None = None

    def record(self, event: HistoryEventType | str, data: Mapping[str, Any] | None = None, *, ts: str) -> HistoryEvent:
        """Append one history event and return it."""
        name = event.value if isinstance(event, HistoryEventType) else event
        entry = HistoryEvent(ts=ts, event=name, data=dict(data or {}))
        self.history.append(entry)
        return entry

    def events_of(self, event: HistoryEventType | str) -> list[HistoryEvent]:
        name = event.value if isinstance(event, HistoryEventType) else event
        return [h for h in self.history if h.event == name]

    @property
    def label(self) -> str:
        return self.code or self.job_id


class DecisionBase(_Record):
    kind: str = "DECISION"
    job_id: str = Field(alias="jobId")
    created_at: str = Field(alias="createdAt")
    action: str
    to_phase: str | None = Field(default=None, alias="toPhase")
    agent: str | None = None
    pipeline: bool | None = None
    note: str | None = None


class SetPhaseDecision(DecisionBase):
    action: Literal["SET_PHASE"] = "SET_PHASE"
    to_phase: Phase = Field(alias="toPhase")


class AssignAgentDecision(DecisionBase):
    action: Literal["ASSIGN_AGENT"] = "ASSIGN_AGENT"
    agent: AgentRole


class OtherDecision(DecisionBase):
    """Any action tag the resolver does not act on. Kept for audit."""


Decision = Union[SetPhaseDecision, AssignAgentDecision, OtherDecision]


def decision_from_record(record: Mapping[str, Any]) -> Decision:
    """Build the tagged variant for a stored decision.

    A record whose tag is known but whose fields do not validate (a SET_PHASE
    to an unknown phase, say) is kept as an `OtherDecision` so it still counts
    in the audit trail without steering the overlay.
    """
    action = record.get("action")
    try:
        match action:
            case DecisionAction.SET_PHASE.value:
                return SetPhaseDecision.model_validate(record)
            case DecisionAction.ASSIGN_AGENT.value:
                return AssignAgentDecision.model_validate(record)
    except ValidationError as exc:
        logger.warning("decision does not match its action schema", action=action, error=str(exc))
    return OtherDecision.model_validate(record)


@dataclass(frozen=True)
class StoredDecision:
    """A decision together with the store path it was read from (or written to)."""

    path: str
    decision: Decision


class AssignEvent(_Record):
    """An ASSIGN_AGENT occurrence, from run history or from the decision log."""

    ts: str | None = None
    event: str = HistoryEventType.ASSIGN_AGENT.value
    data: dict[str, Any] = Field(default_factory=dict)


class DispatchMarker(_Record):
    kind: str = "DISPATCH_REQUEST"
    created_at: str = Field(alias="createdAt")
    job_id: str = Field(alias="jobId")
    code: str | None = None
    title: str | None = None
    dispatch_key: str = Field(alias="dispatchKey")
    assign_event: AssignEvent = Field(alias="assignEvent")
    requested_role: str = Field(alias="requestedRole")
    pool: str | None = None
    status: MarkerStatus = MarkerStatus.QUEUED
    notes: str = ""


class InboxItem(_Record):
    """A raw idea dropped into the inbox, not yet staged as a Pending Job."""

    id: str
    created_at: str = Field(alias="createdAt")
    kind: str = "INBOX_ITEM"
    idea: str
    requester: str = "web"
    status: str = "PENDING"
