"""Codex event envelope models.

codex-stream events v0.1.0

The child process writes one envelope per line:

    {"id": "0", "msg": {"type": "agent_message", "message": "..."}}

The bridge itself passes records through as plain dicts. These models are
an optional typed view: unknown ``msg.type`` values and unknown fields are
accepted and kept (``extra="allow"``), so a newer codex never breaks
validation.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

__all__ = [
    "EventType",
    "EventMsg",
    "CodexEvent",
    "TokenUsage",
    "MESSAGE_TYPES",
    "DELTA_TYPES",
    "parse_event",
]


class EventType(str, Enum):
    """Known ``msg.type`` discriminators."""

    ERROR = "error"
    TASK_STARTED = "task_started"
    TASK_COMPLETE = "task_complete"
    TOKEN_COUNT = "token_count"
    AGENT_MESSAGE = "agent_message"
    AGENT_MESSAGE_DELTA = "agent_message_delta"
    AGENT_REASONING = "agent_reasoning"
    AGENT_REASONING_DELTA = "agent_reasoning_delta"
    AGENT_REASONING_RAW_CONTENT = "agent_reasoning_raw_content"
    AGENT_REASONING_RAW_CONTENT_DELTA = "agent_reasoning_raw_content_delta"
    SESSION_CONFIGURED = "session_configured"
    MCP_TOOL_CALL_BEGIN = "mcp_tool_call_begin"
    MCP_TOOL_CALL_END = "mcp_tool_call_end"
    EXEC_COMMAND_BEGIN = "exec_command_begin"
    EXEC_COMMAND_OUTPUT_DELTA = "exec_command_output_delta"
    EXEC_COMMAND_END = "exec_command_end"
    EXEC_APPROVAL_REQUEST = "exec_approval_request"
    APPLY_PATCH_APPROVAL_REQUEST = "apply_patch_approval_request"
    BACKGROUND_EVENT = "background_event"
    PATCH_APPLY_BEGIN = "patch_apply_begin"
    PATCH_APPLY_END = "patch_apply_end"
    TURN_DIFF = "turn_diff"
    GET_HISTORY_ENTRY_RESPONSE = "get_history_entry_response"
    PLAN_UPDATE = "plan_update"
    SHUTDOWN_COMPLETE = "shutdown_complete"


# Complete text, carried in "message" or "text"
MESSAGE_TYPES = frozenset({
    EventType.AGENT_MESSAGE,
    EventType.AGENT_REASONING,
    EventType.AGENT_REASONING_RAW_CONTENT,
    EventType.ERROR,
    EventType.BACKGROUND_EVENT,
})

# Incremental text, carried in "delta"
DELTA_TYPES = frozenset({
    EventType.AGENT_MESSAGE_DELTA,
    EventType.AGENT_REASONING_DELTA,
    EventType.AGENT_REASONING_RAW_CONTENT_DELTA,
})


class TokenUsage(BaseModel):
    """Token accounting from a ``token_count`` message."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    input_tokens: int = 0
    cached_input_tokens: int | None = None
    output_tokens: int = 0
    reasoning_output_tokens: int | None = None
    total_tokens: int = 0


class EventMsg(BaseModel):
    """Variant payload; only the discriminator is required."""

    model_config = ConfigDict(extra="allow", frozen=True)

    type: str

    @property
    def kind(self) -> EventType | None:
        """The known variant, or None for a type this version does not know."""
        try:
            return EventType(self.type)
        except ValueError:
            return None

    @property
    def payload(self) -> dict[str, Any]:
        """Variant fields other than ``type``."""
        return dict(self.model_extra or {})

    def get(self, name: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(name, default)


class CodexEvent(BaseModel):
    """Top-level envelope: ``{id, msg}``."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    msg: EventMsg

    @property
    def type(self) -> str:
        return self.msg.type

    @property
    def kind(self) -> EventType | None:
        return self.msg.kind

    @property
    def text(self) -> str | None:
        """Text of message-like and delta events, None otherwise."""
        kind = self.kind
        if kind in DELTA_TYPES:
            return self.msg.get("delta")
        if kind in MESSAGE_TYPES:
            return self.msg.get("message", self.msg.get("text"))
        return None

    @property
    def token_usage(self) -> TokenUsage | None:
        if self.kind is not EventType.TOKEN_COUNT:
            return None
        return TokenUsage.model_validate(self.msg.payload)

    def to_dict(self) -> dict[str, Any]:
        """The record as it appeared on the wire."""
        return self.model_dump(mode="json")


def parse_event(record: dict[str, Any]) -> CodexEvent:
    """Validate a raw record as an envelope.

    Raises:
        pydantic.ValidationError: ``id`` or ``msg.type`` missing
    """
    return CodexEvent.model_validate(record)
