from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


class ChartType(StrEnum):
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    AREA = "area"
    TABLE = "table"


# Reported to clients when no chart can be drawn (no SQL, or the run degraded).
NO_CHART = "none"


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TenantCredential:
    tenant_id: str
    provider: str | None
    model: str | None
    # Opaque ciphertext; keep it out of repr so it never lands in logs.
    encrypted_key: str = field(repr=False)


@dataclass(frozen=True)
class EncryptedSecret:
    iv: bytes
    auth_tag: bytes
    ciphertext: bytes

    def serialize(self) -> str:
        return f"{self.iv.hex()}:{self.auth_tag.hex()}:{self.ciphertext.hex()}"


@dataclass(frozen=True)
class ChartConfig:
    x_axis: str | None = None
    y_axis: str | None = None
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = {"xAxis": self.x_axis, "yAxis": self.y_axis, "title": self.title}
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class QueryPlan:
    sql: str | None
    explanation: str
    chart_type: ChartType = ChartType.TABLE
    chart_config: ChartConfig = field(default_factory=ChartConfig)
    error: bool = False

    @property
    def is_answerable(self) -> bool:
        return bool(self.sql) and not self.error


@dataclass(frozen=True)
class GuardDecision:
    ok: bool
    reason: str | None = None


@dataclass(frozen=True)
class ExecutionResult:
    rows: list[dict[str, Any]]

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class ConversationTurn:
    tenant_id: str
    session_id: str
    role: Role
    content: str
    sql_generated: str | None = None
    chart_type: str | None = None
    model_used: str | None = None
    provider_used: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class AnalyticsRequest:
    message: str
    tenant_id: str
    session_id: str | None = None


@dataclass(frozen=True)
class AnalyticsResponse:
    summary: str
    data: list[dict[str, Any]] | None
    chart_type: str
    chart_config: dict[str, Any] = field(default_factory=dict)
    sql: str | None = None
    row_count: int = 0
    error: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "summary": self.summary,
            "data": self.data,
            "chartType": self.chart_type,
            "chartConfig": self.chart_config,
            "sql": self.sql,
            "rowCount": self.row_count,
        }
        if self.error:
            payload["error"] = True
        return payload
