"""Result and step models for Cosmos Tool.

Pydantic models for query results returned by CosmosClient.execute_query()
and for multi-step pipeline output.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, computed_field, field_validator


class QueryResult(BaseModel):
    """Documents returned by one query, in range-then-page order, plus total cost."""

    model_config = ConfigDict(frozen=True)

    documents: list[Any]
    request_charge: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def document_count(self) -> int:
        return len(self.documents)


class StepDefinition(BaseModel):
    """One named sub-query of a multi-step stored query."""

    model_config = ConfigDict(frozen=True)

    name: str
    container: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        # Step names appear in SQL as @name.field references.
        if not re.fullmatch(r"\w+", v):
            msg = f"Invalid step name: '{v}'. Use letters, digits and underscores"
            raise ValueError(msg)
        return v


class PipelineResult(BaseModel):
    """Documents per step plus the request charge summed over every step."""

    model_config = ConfigDict(frozen=True)

    step_results: dict[str, list[Any]]
    total_charge: float = 0.0
