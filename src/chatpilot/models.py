"""
Defines the core Pydantic data models for the engine.

These models serve as the formal, validated data contract between all other pillars.
The wire records mirror the OpenAI SDK objects so that ``model_dump()`` output from
the SDK validates directly into them; unknown fields are ignored.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, NamedTuple, Optional

from pydantic import BaseModel, Field, model_validator

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"
TOOL_ROLE = "tool"
Role = Literal[USER_ROLE, ASSISTANT_ROLE, SYSTEM_ROLE, TOOL_ROLE]

FILE_ID_PREFIX = "file-"


class ConversationType(str, Enum):
    NORMAL = "normal"
    ASSISTANT = "assistant"


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"


# --- Conversation models ---
class ChatMessage(BaseModel):
    """Represents a single message within a conversation."""

    role: Role
    content: str = ""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_local: bool = False
    is_run_step: bool = False


class Conversation(BaseModel):
    """Represents a complete chat conversation session."""

    id: str
    type: ConversationType = ConversationType.NORMAL
    assistant_id: Optional[str] = None
    thread_id: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_assistant_id(self) -> "Conversation":
        if self.type == ConversationType.ASSISTANT and not self.assistant_id:
            raise ValueError("assistant conversations require an assistant_id")
        if self.type == ConversationType.NORMAL and self.assistant_id:
            raise ValueError("normal conversations cannot carry an assistant_id")
        return self


class RunJob(NamedTuple):
    """Key and context of one polling registration."""

    conversation_id: str
    run_id: str
    thread_id: str


# --- Streaming completion wire records ---
class FunctionCall(BaseModel):
    name: Optional[str] = None
    arguments: Optional[str] = None


class ToolCallDelta(BaseModel):
    index: int = 0
    id: Optional[str] = None
    function: Optional[FunctionCall] = None


class Delta(BaseModel):
    role: Optional[Role] = None
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCallDelta]] = None


class StreamChoice(BaseModel):
    index: int = 0
    delta: Delta = Field(default_factory=Delta)
    finish_reason: Optional[str] = None


class ChatStreamChunk(BaseModel):
    """One partial event of a streamed chat completion."""

    id: str
    created: int = 0
    choices: List[StreamChoice] = Field(default_factory=list)

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.created, tz=timezone.utc)


# --- Assistant (thread + run) wire records ---
class RequiredToolCall(BaseModel):
    id: str
    type: str = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)


class SubmitToolOutputs(BaseModel):
    tool_calls: List[RequiredToolCall] = Field(default_factory=list)


class RequiredAction(BaseModel):
    type: str = "submit_tool_outputs"
    submit_tool_outputs: SubmitToolOutputs = Field(default_factory=SubmitToolOutputs)


class RunResult(BaseModel):
    id: str
    thread_id: str
    assistant_id: Optional[str] = None
    status: RunStatus
    required_action: Optional[RequiredAction] = None
    tools: Optional[List[Dict[str, Any]]] = None


class CodeInterpreterOutput(BaseModel):
    type: str = "logs"
    logs: Optional[str] = None


class CodeInterpreterCall(BaseModel):
    input: str = ""
    outputs: List[CodeInterpreterOutput] = Field(default_factory=list)


class StepToolCall(BaseModel):
    id: str
    type: Literal["file_search", "code_interpreter", "function"]
    code_interpreter: Optional[CodeInterpreterCall] = None
    function: Optional[FunctionCall] = None


class StepDetails(BaseModel):
    type: str = "tool_calls"
    tool_calls: Optional[List[StepToolCall]] = None


class RunStep(BaseModel):
    id: str
    assistant_id: Optional[str] = None
    step_details: StepDetails = Field(default_factory=StepDetails)


class TextContent(BaseModel):
    value: str = ""


class MessageContentPart(BaseModel):
    type: str = "text"
    text: Optional[TextContent] = None


class ThreadMessage(BaseModel):
    id: str
    role: Role
    content: List[MessageContentPart] = Field(default_factory=list)


class FileObject(BaseModel):
    id: str
    filename: Optional[str] = None


class FileIdsCall(BaseModel):
    """Tool-call argument payload referencing uploaded files."""

    file_ids: List[str]


class ToolOutput(BaseModel):
    tool_call_id: str
    output: str
