"""
A2A Protocol Value Types for a2apy
Typed, immutable models for the outward task protocol (status and artifact
updates) and for the inbound task request handed to the executor.
Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ProtocolModel(BaseModel):
    """Base model: immutable, camelCase aliases, accepts either spelling"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire dictionary"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class TaskState(str, Enum):
    """Task lifecycle states"""
    SUBMITTED = "submitted"
    WORKING = "working"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELED)


class TextPart(ProtocolModel):
    kind: Literal["text"] = "text"
    text: str
    metadata: Optional[Dict[str, Any]] = None


class DataPart(ProtocolModel):
    kind: Literal["data"] = "data"
    data: Dict[str, Any]
    metadata: Optional[Dict[str, Any]] = None


class FilePart(ProtocolModel):
    kind: Literal["file"] = "file"
    file: Dict[str, Any]
    metadata: Optional[Dict[str, Any]] = None


Part = Annotated[Union[TextPart, DataPart, FilePart], Field(discriminator="kind")]


class Message(ProtocolModel):
    """A conversational message (user prompt or agent status text)"""
    kind: Literal["message"] = "message"
    message_id: str
    role: Literal["user", "agent"]
    parts: List[Part] = Field(default_factory=list)
    context_id: Optional[str] = None
    task_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def text(self, separator: str = "\n") -> str:
        """Concatenate the text parts in order; other parts are ignored"""
        return separator.join(part.text for part in self.parts if isinstance(part, TextPart))


class TaskStatus(ProtocolModel):
    state: TaskState
    timestamp: str = Field(default_factory=utc_timestamp)
    message: Optional[Message] = None


class Task(ProtocolModel):
    """Task record, published once when a new task is submitted"""
    kind: Literal["task"] = "task"
    id: str
    context_id: str
    status: TaskStatus
    history: List[Message] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None


class Artifact(ProtocolModel):
    artifact_id: str
    name: str
    parts: List[Part] = Field(default_factory=list)


class TaskStatusUpdateEvent(ProtocolModel):
    kind: Literal["status-update"] = "status-update"
    task_id: str
    context_id: str
    status: TaskStatus
    final: bool = False


class TaskArtifactUpdateEvent(ProtocolModel):
    kind: Literal["artifact-update"] = "artifact-update"
    task_id: str
    context_id: str
    artifact: Artifact
    append: bool = False
    last_chunk: bool = True


class TaskRequest(ProtocolModel):
    """Inbound task delivered by the A2A request handler"""
    task_id: str
    context_id: str
    message: Message
    task: Optional[Task] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
