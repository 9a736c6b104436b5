from __future__ import annotations

"""Normalization of tool-call callbacks.

LLM streaming layers report tool calls with different field spellings
(``toolCallId`` vs ``id``, ``toolName`` vs ``name``, ``args`` vs ``input``,
``result`` vs ``output``) and as either mappings or plain objects. The
helpers here turn such payloads into ``ToolCall`` / ``ToolResult`` models so
the coordinator only ever deals with one shape.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import AliasChoices, ConfigDict, Field, field_validator

from ..schemas.base import BaseSchema

_CALL_FIELDS = (
    "toolCallId",
    "tool_call_id",
    "id",
    "toolName",
    "tool_name",
    "name",
    "args",
    "input",
    "dependencies",
)
_RESULT_FIELDS = (
    "toolCallId",
    "tool_call_id",
    "id",
    "toolName",
    "tool_name",
    "name",
    "result",
    "output",
    "error",
)


class ToolCall(BaseSchema):
    """A tool call the model has just issued."""

    model_config = ConfigDict(extra="ignore")

    call_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("call_id", "toolCallId", "tool_call_id", "id")
    )
    name: str = Field(validation_alias=AliasChoices("name", "toolName", "tool_name"))
    args: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("args", "input"))
    dependencies: Optional[List[str]] = None

    @field_validator("args", mode="before")
    @classmethod
    def _none_args(cls, v: Any) -> Any:
        return {} if v is None else v


class ToolResult(BaseSchema):
    """The outcome of a previously issued tool call."""

    model_config = ConfigDict(extra="ignore")

    call_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("call_id", "toolCallId", "tool_call_id", "id")
    )
    name: Optional[str] = Field(default=None, validation_alias=AliasChoices("name", "toolName", "tool_name"))
    result: Any = Field(default=None, validation_alias=AliasChoices("result", "output"))
    error: Optional[str] = None

    @field_validator("error", mode="before")
    @classmethod
    def _stringify_error(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        if isinstance(v, BaseException):
            return str(v) or type(v).__name__
        if isinstance(v, Mapping) and "message" in v:
            return str(v["message"])
        return str(v)


def _as_mapping(raw: Any, fields: tuple[str, ...]) -> Dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    return {f: getattr(raw, f) for f in fields if hasattr(raw, f)}


def normalize_tool_call(raw: Any) -> ToolCall:
    """Build a ``ToolCall`` from a mapping, an object or an existing model."""
    if isinstance(raw, ToolCall):
        return raw
    return ToolCall.model_validate(_as_mapping(raw, _CALL_FIELDS))


def normalize_tool_result(raw: Any) -> ToolResult:
    """Build a ``ToolResult`` from a mapping, an object or an existing model."""
    if isinstance(raw, ToolResult):
        return raw
    return ToolResult.model_validate(_as_mapping(raw, _RESULT_FIELDS))
