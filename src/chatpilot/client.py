"""Concrete implementations for remote API clients."""

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from .errors import ConversionError
from .models import (
    ASSISTANT_ROLE,
    SYSTEM_ROLE,
    USER_ROLE,
    ChatMessage,
    ChatStreamChunk,
    FileObject,
    RunResult,
    RunStep,
    ThreadMessage,
    ToolOutput,
)

logger = logging.getLogger(__name__)

CHAT_ROLES = (USER_ROLE, ASSISTANT_ROLE, SYSTEM_ROLE)
THREAD_ROLES = (USER_ROLE, ASSISTANT_ROLE)


def to_wire_message(
    message: ChatMessage, roles: Iterable[str] = CHAT_ROLES
) -> Dict[str, str]:
    """Render a message into the remote API's message shape.

    Parameters
    ----------
    message : ChatMessage
        The message to convert.
    roles : Iterable[str]
        Roles accepted by the target endpoint. Chat completions accept
        user/assistant/system, threads only user/assistant.

    Returns
    -------
    Dict[str, str]
        ``{"role": ..., "content": ...}``

    Raises
    ------
    ConversionError
        If the role is not accepted by the target endpoint. Tool messages are
        never convertible since the engine does not track tool call ids.
    """
    if message.role not in tuple(roles):
        raise ConversionError(
            f"Cannot send a {message.role!r} message (id={message.id}) to this endpoint"
        )
    return {"role": message.role, "content": message.content}


class Client(ABC):
    """Interface for the remote LLM API.

    Every operation is a coroutine except ``stream_chat_completion``, which
    returns an async iterator of partial events.
    """

    @abstractmethod
    async def create_thread(self, messages: List[Dict[str, str]]) -> str:
        """Creates a thread seeded with ``messages`` and returns its id."""
        pass

    @abstractmethod
    async def create_run(
        self,
        thread_id: str,
        assistant_id: str,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[Dict[str, Any]] = None,
    ) -> RunResult:
        """Starts a run of ``assistant_id`` on the thread."""
        pass

    @abstractmethod
    async def append_thread_message(
        self, thread_id: str, role: str, content: str
    ) -> None:
        pass

    @abstractmethod
    async def retrieve_run(self, thread_id: str, run_id: str) -> RunResult:
        pass

    @abstractmethod
    async def list_run_steps(
        self, thread_id: str, run_id: str, before: Optional[str] = None
    ) -> List[RunStep]:
        """Lists run steps, newest first."""
        pass

    @abstractmethod
    async def list_thread_messages(
        self, thread_id: str, before: Optional[str] = None
    ) -> List[ThreadMessage]:
        """Lists thread messages, newest first."""
        pass

    @abstractmethod
    async def retrieve_file(self, file_id: str) -> FileObject:
        pass

    @abstractmethod
    def stream_chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncIterator[ChatStreamChunk]:
        """Streams a chat completion as a sequence of partial events."""
        pass

    @abstractmethod
    async def submit_tool_outputs(
        self, thread_id: str, run_id: str, outputs: List[ToolOutput]
    ) -> RunResult:
        pass

    async def aclose(self) -> None:
        """Releases network resources. The default holds none."""
        pass


class OpenAI(Client):
    """Client backed by the official ``openai`` async SDK."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        from openai import AsyncOpenAI

        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def create_thread(self, messages):
        thread = await self.client.beta.threads.create(messages=messages)
        logger.info("Created thread %s", thread.id)
        return thread.id

    async def create_run(self, thread_id, assistant_id, tools=None, tool_choice=None):
        kwargs: Dict[str, Any] = {}
        if tools is not None:
            kwargs["tools"] = tools
        if tool_choice is not None:
            kwargs["tool_choice"] = tool_choice
        run = await self.client.beta.threads.runs.create(
            thread_id=thread_id, assistant_id=assistant_id, **kwargs
        )
        logger.info("Created run %s on thread %s", run.id, thread_id)
        return RunResult.model_validate(run.model_dump())

    async def append_thread_message(self, thread_id, role, content):
        await self.client.beta.threads.messages.create(
            thread_id=thread_id, role=role, content=content
        )

    async def retrieve_run(self, thread_id, run_id):
        run = await self.client.beta.threads.runs.retrieve(run_id, thread_id=thread_id)
        return RunResult.model_validate(run.model_dump())

    async def list_run_steps(self, thread_id, run_id, before=None):
        kwargs = {"before": before} if before else {}
        page = await self.client.beta.threads.runs.steps.list(
            run_id, thread_id=thread_id, **kwargs
        )
        return [RunStep.model_validate(step.model_dump()) for step in page.data]

    async def list_thread_messages(self, thread_id, before=None):
        kwargs = {"before": before} if before else {}
        page = await self.client.beta.threads.messages.list(thread_id, **kwargs)
        return [ThreadMessage.model_validate(msg.model_dump()) for msg in page.data]

    async def retrieve_file(self, file_id):
        file = await self.client.files.retrieve(file_id)
        return FileObject.model_validate(file.model_dump())

    async def stream_chat_completion(self, messages, model, tools=None):
        kwargs: Dict[str, Any] = {"tools": tools} if tools else {}
        stream = await self.client.chat.completions.create(
            messages=messages, model=model, stream=True, **kwargs
        )
        async for chunk in stream:
            yield ChatStreamChunk.model_validate(chunk.model_dump())

    async def submit_tool_outputs(self, thread_id, run_id, outputs):
        run = await self.client.beta.threads.runs.submit_tool_outputs(
            run_id,
            thread_id=thread_id,
            tool_outputs=[output.model_dump() for output in outputs],
        )
        return RunResult.model_validate(run.model_dump())

    async def aclose(self):
        await self.client.close()
