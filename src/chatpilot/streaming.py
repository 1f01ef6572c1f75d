"""Folds a streamed chat completion into conversation messages."""

import logging
from typing import List, Optional

from .client import CHAT_ROLES, Client, to_wire_message
from .models import ASSISTANT_ROLE, ChatMessage, ChatStreamChunk, StreamChoice
from .resolver import EMPTY_FILENAME, FunctionCallFragment, ToolCallResolver
from .store import Store
from .tools import Tool

logger = logging.getLogger(__name__)

TOOL_CALLS_FINISH_REASON = "tool_calls"


class StreamingMerger:
    """Consumes one streaming completion per call and merges it into a conversation.

    Events are processed one at a time in arrival order, so the order of
    appends and melds always matches the order of the stream. Errors abort the
    stream and propagate; messages merged before the error stay in place.
    """

    def __init__(
        self, client: Client, store: Store, resolver: ToolCallResolver, tools: Tool
    ):
        self.client = client
        self.store = store
        self.resolver = resolver
        self.tools = tools

    async def merge(self, conversation_id: str, model: str) -> None:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            return

        # Conversion happens up front so nothing is sent on failure.
        wire_messages = [
            to_wire_message(message, CHAT_ROLES) for message in conversation.messages
        ]
        stream = self.client.stream_chat_completion(
            wire_messages, model, self.tools.get_tools()
        )

        calls: List[FunctionCallFragment] = []
        async for chunk in stream:
            for choice in chunk.choices:
                await self._merge_choice(conversation_id, chunk, choice, calls)

    async def _merge_choice(
        self,
        conversation_id: str,
        chunk: ChatStreamChunk,
        choice: StreamChoice,
        calls: List[FunctionCallFragment],
    ) -> None:
        _accumulate(calls, choice)

        role = choice.delta.role or ASSISTANT_ROLE
        content = choice.delta.content or ""
        file_ids: List[str] = []
        if choice.finish_reason == TOOL_CALLS_FINISH_REASON:
            content += self.resolver.render(calls)
            file_ids = self.resolver.referenced_file_ids(calls)

        self.store.meld_message(
            conversation_id,
            ChatMessage(
                id=chunk.id, role=role, content=content, created_at=chunk.created_at
            ),
        )

        for file_id in file_ids:
            file = await self.resolver.fetch_file(file_id)
            self.store.append_message(
                conversation_id,
                ChatMessage(
                    role=role,
                    content=file.filename or EMPTY_FILENAME,
                    created_at=chunk.created_at,
                ),
            )


def _accumulate(calls: List[FunctionCallFragment], choice: StreamChoice) -> None:
    # A named fragment opens a new call; nameless fragments continue the
    # arguments of the latest one.
    for tool_call in choice.delta.tool_calls or []:
        function = tool_call.function
        if function is None:
            continue
        if function.name:
            calls.append((function.name, function.arguments))
        elif function.arguments and calls:
            name, arguments = calls[-1]
            calls[-1] = (name, (arguments or "") + function.arguments)
