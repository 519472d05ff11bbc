"""
A2A Event Publisher

Stateless constructors for outward task events, plus thin publish_* helpers
that hand the constructed event to the current task's event bus.

Response artifacts are named ``response``. Sideband trace artifacts are named
by their trace key (``trace.mcp``, ``trace.thought``); consumers read them
for observability only and never feed them back to the model.
"""

import uuid
from typing import Any, Dict, Optional

from .event_bus import EventBus
from .protocol import (
    Artifact,
    DataPart,
    Message,
    Task,
    TaskArtifactUpdateEvent,
    TaskState,
    TaskStatus,
    TaskStatusUpdateEvent,
    TextPart,
)

RESPONSE_ARTIFACT_NAME = "response"
TRACE_MCP = "trace.mcp"
TRACE_THOUGHT = "trace.thought"


def new_response_artifact_id() -> str:
    return f"{RESPONSE_ARTIFACT_NAME}-{uuid.uuid4()}"


def agent_message(context_id: str, text: str) -> Message:
    """Wrap status text in an agent message"""
    return Message(
        message_id=str(uuid.uuid4()),
        role="agent",
        parts=[TextPart(text=text)],
        context_id=context_id,
    )


# Status updates

def status_update(
    task_id: str,
    context_id: str,
    state: TaskState,
    message_text: Optional[str] = None,
    final: bool = False,
) -> TaskStatusUpdateEvent:
    """Build a status-update event, optionally carrying human-readable text"""
    message = agent_message(context_id, message_text) if message_text else None
    return TaskStatusUpdateEvent(
        task_id=task_id,
        context_id=context_id,
        status=TaskStatus(state=state, message=message),
        final=final,
    )


def submitted_task(task_id: str, context_id: str, user_message: Message) -> Task:
    """Build the task record announcing a newly submitted task"""
    return Task(
        id=task_id,
        context_id=context_id,
        status=TaskStatus(state=TaskState.SUBMITTED),
        history=[user_message],
    )


# Response artifacts

def buffered_artifact(task_id: str, context_id: str, text: str) -> TaskArtifactUpdateEvent:
    """One complete artifact: one artifact-update is one chat bubble"""
    return TaskArtifactUpdateEvent(
        task_id=task_id,
        context_id=context_id,
        append=False,
        last_chunk=True,
        artifact=Artifact(
            artifact_id=new_response_artifact_id(),
            name=RESPONSE_ARTIFACT_NAME,
            parts=[TextPart(text=text)],
        ),
    )


def streaming_chunk(task_id: str, context_id: str, artifact_id: str, chunk_text: str) -> TaskArtifactUpdateEvent:
    """A streamed text chunk appended to ``artifact_id``"""
    return TaskArtifactUpdateEvent(
        task_id=task_id,
        context_id=context_id,
        append=True,
        last_chunk=False,
        artifact=Artifact(
            artifact_id=artifact_id,
            name=RESPONSE_ARTIFACT_NAME,
            parts=[TextPart(text=chunk_text)],
        ),
    )


def last_chunk(task_id: str, context_id: str, artifact_id: str, full_text: str) -> TaskArtifactUpdateEvent:
    """Final marker for a streamed artifact; carries the full accumulated text"""
    return TaskArtifactUpdateEvent(
        task_id=task_id,
        context_id=context_id,
        append=True,
        last_chunk=True,
        artifact=Artifact(
            artifact_id=artifact_id,
            name=RESPONSE_ARTIFACT_NAME,
            parts=[TextPart(text=full_text)],
        ),
    )


# Sideband trace artifacts

def trace_data_artifact(task_id: str, context_id: str, trace_key: str, data: Dict[str, Any]) -> TaskArtifactUpdateEvent:
    """Structured trace artifact (tool calls, delegations) in a data part"""
    return TaskArtifactUpdateEvent(
        task_id=task_id,
        context_id=context_id,
        append=False,
        last_chunk=True,
        artifact=Artifact(
            artifact_id=f"{trace_key}-{uuid.uuid4()}",
            name=trace_key,
            parts=[DataPart(data=data, metadata={"mimeType": "application/json"})],
        ),
    )


def trace_text_artifact(task_id: str, context_id: str, trace_key: str, text: str) -> TaskArtifactUpdateEvent:
    """Free-form trace artifact (reasoning) in a text part"""
    return TaskArtifactUpdateEvent(
        task_id=task_id,
        context_id=context_id,
        append=False,
        last_chunk=True,
        artifact=Artifact(
            artifact_id=f"{trace_key}-{uuid.uuid4()}",
            name=trace_key,
            parts=[TextPart(text=text)],
        ),
    )


# Publish helpers

def publish_status(
    bus: EventBus,
    task_id: str,
    context_id: str,
    state: TaskState,
    message_text: Optional[str] = None,
    final: bool = False,
) -> None:
    bus.publish(status_update(task_id, context_id, state, message_text, final))


def publish_buffered_artifact(bus: EventBus, task_id: str, context_id: str, text: str) -> None:
    bus.publish(buffered_artifact(task_id, context_id, text))


def publish_streaming_chunk(bus: EventBus, task_id: str, context_id: str, artifact_id: str, chunk_text: str) -> None:
    bus.publish(streaming_chunk(task_id, context_id, artifact_id, chunk_text))


def publish_last_chunk(bus: EventBus, task_id: str, context_id: str, artifact_id: str, full_text: str) -> None:
    bus.publish(last_chunk(task_id, context_id, artifact_id, full_text))


def publish_trace_artifact(bus: EventBus, task_id: str, context_id: str, trace_key: str, data: Dict[str, Any]) -> None:
    bus.publish(trace_data_artifact(task_id, context_id, trace_key, data))


def publish_thought_artifact(bus: EventBus, task_id: str, context_id: str, text: str) -> None:
    bus.publish(trace_text_artifact(task_id, context_id, TRACE_THOUGHT, text))
