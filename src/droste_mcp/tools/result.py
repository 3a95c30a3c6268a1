"""Tool call and result types shared by all transports."""

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


class ToolCallState(enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS = {
    ToolCallState.RECEIVED: (ToolCallState.VALIDATED, ToolCallState.FAILED),
    ToolCallState.VALIDATED: (ToolCallState.EXECUTING, ToolCallState.FAILED),
    ToolCallState.EXECUTING: (ToolCallState.SUCCEEDED, ToolCallState.FAILED),
}


@dataclass
class ToolCall:
    """A single tool invocation (never persisted)."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    state: ToolCallState = ToolCallState.RECEIVED

    def advance(self, state: ToolCallState) -> None:
        """
        Move to the next lifecycle state.

        Raises:
            RuntimeError: If the transition is not allowed
        """
        if state not in _TRANSITIONS.get(self.state, ()):
            raise RuntimeError(
                f"Invalid tool call transition for {self.name}: "
                f"{self.state.value} -> {state.value}"
            )
        self.state = state


@dataclass(frozen=True)
class ToolResult:
    """
    MCP tool result envelope.

    Attributes:
        content: Ordered content items ({"type": "text", "text": ...})
        is_error: Whether the tool call failed
        error: Exception behind a failure (not serialized)
    """

    content: Tuple[Dict[str, str], ...]
    is_error: bool = False
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)

    @classmethod
    def text(cls, text: str) -> "ToolResult":
        return cls(content=({"type": "text", "text": text},))

    @classmethod
    def json(cls, data: Any) -> "ToolResult":
        """Wrap a JSON-serializable payload as pretty-printed text content."""
        return cls.text(json.dumps(data, indent=2, ensure_ascii=False))

    @classmethod
    def failure(cls, message: str, error: Optional[BaseException] = None) -> "ToolResult":
        return cls(
            content=({"type": "text", "text": message},),
            is_error=True,
            error=error,
        )

    @property
    def first_text(self) -> str:
        return self.content[0]["text"] if self.content else ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the MCP tools/call result shape."""
        content: List[Dict[str, str]] = [dict(item) for item in self.content]
        return {"content": content, "isError": self.is_error}
