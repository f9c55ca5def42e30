"""Continuity checker output contract.

Field names follow the checker's camelCase JSON; Python code reads the
snake_case attributes.
"""
from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class EvidenceSource(str, enum.Enum):
    CANON = "canon"
    NEW_DOCUMENT = "new_document"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EvidenceItem(_CamelModel):
    source: EvidenceSource = EvidenceSource.NEW_DOCUMENT
    quote: str = ""
    entity_name: Optional[str] = Field(default=None, alias="entityName")


class ProposedAlert(_CamelModel):
    type: str = "ambiguity"
    severity: str = "warning"
    title: str = "Unknown Issue"
    description: str = ""
    evidence: list[EvidenceItem] = Field(default_factory=list)
    suggested_fix: Optional[str] = Field(default=None, alias="suggestedFix")
    affected_entities: Optional[list[str]] = Field(default=None, alias="affectedEntities")


class CheckSummary(_CamelModel):
    total_issues: int = Field(default=0, alias="totalIssues")
    errors: int = 0
    warnings: int = 0
    checked_entities: list[str] = Field(default_factory=list, alias="checkedEntities")


class CheckResult(_CamelModel):
    alerts: list[ProposedAlert] = Field(default_factory=list)
    summary: CheckSummary = Field(default_factory=CheckSummary)

    @classmethod
    def empty(cls) -> "CheckResult":
        return cls()

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# JSON schema sent with the chat completion request (strict mode).
CHECK_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "alerts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"enum": ["contradiction", "timeline", "ambiguity"]},
                    "severity": {"enum": ["error", "warning"]},
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "evidence": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "source": {"enum": ["canon", "new_document"]},
                                "quote": {"type": "string"},
                                "entityName": {"type": "string"},
                            },
                            "required": ["source", "quote"],
                            "additionalProperties": False,
                        },
                    },
                    "suggestedFix": {"type": "string"},
                    "affectedEntities": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["type", "severity", "title", "description", "evidence"],
                "additionalProperties": False,
            },
        },
        "summary": {
            "type": "object",
            "properties": {
                "totalIssues": {"type": "number"},
                "errors": {"type": "number"},
                "warnings": {"type": "number"},
                "checkedEntities": {"type": "array", "items": {"type": "string"}},
            },
            "additionalProperties": False,
        },
    },
    "required": ["alerts", "summary"],
    "additionalProperties": False,
}
