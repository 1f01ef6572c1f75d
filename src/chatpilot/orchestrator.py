"""Top-level dispatch of user messages to the remote API."""

import logging
from typing import Optional

from .client import THREAD_ROLES, Client, to_wire_message
from .errors import ConversionError
from .models import ChatMessage, Conversation, ConversationType, RunJob
from .poller import RunPoller
from .store import Store
from .streaming import StreamingMerger

logger = logging.getLogger(__name__)


class Orchestrator:
    """Routes each sent message by conversation type.

    Normal conversations stream a chat completion through the
    ``StreamingMerger``. Assistant conversations echo the message locally,
    post it to the conversation's thread, start a run and hand the run over
    to the ``RunPoller``; the echo is replaced once the thread history is
    reconciled.
    """

    def __init__(
        self,
        client: Client,
        store: Store,
        merger: StreamingMerger,
        poller: RunPoller,
        default_model: str = "gpt-4o",
    ):
        self.client = client
        self.store = store
        self.merger = merger
        self.poller = poller
        self.default_model = default_model

    async def send_message(
        self, message: ChatMessage, conversation_id: str, model: Optional[str] = None
    ) -> None:
        """Sends ``message`` in the conversation ``conversation_id``.

        Unknown conversations are ignored. Failures never raise: completion
        errors land in the store's error map, assistant-mode failures are
        logged and leave the local echo in place.
        """
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            logger.debug("Ignoring message for unknown conversation %s", conversation_id)
            return

        if conversation.type == ConversationType.NORMAL:
            self.store.append_message(conversation_id, message)
            await self.complete_chat(conversation_id, model)
            return

        is_first = not conversation.messages or conversation.thread_id is None
        local_message = message.model_copy(update={"is_local": True})
        self.store.append_message(conversation_id, local_message)

        try:
            wire_message = to_wire_message(message, THREAD_ROLES)
        except ConversionError:
            logger.exception("Could not form a thread message")
            return

        try:
            if is_first:
                job = await self._start_thread(conversation, wire_message)
            else:
                job = await self._continue_thread(conversation, wire_message)
        except Exception:
            logger.exception(
                "Could not start a run for conversation %s", conversation_id
            )
            return

        self.poller.start(job)

    async def complete_chat(
        self, conversation_id: str, model: Optional[str] = None
    ) -> None:
        if self.store.get_conversation(conversation_id) is None:
            return

        self.store.set_error(conversation_id, None)
        try:
            await self.merger.merge(conversation_id, model or self.default_model)
        except Exception as e:
            logger.warning("Chat completion failed for %s: %s", conversation_id, e)
            self.store.set_error(conversation_id, e)

    async def _start_thread(self, conversation: Conversation, wire_message) -> RunJob:
        thread_id = await self.client.create_thread([wire_message])
        run = await self.client.create_run(thread_id, conversation.assistant_id)
        self.store.bind_thread(conversation.id, thread_id)
        return RunJob(conversation.id, run.id, thread_id)

    async def _continue_thread(self, conversation: Conversation, wire_message) -> RunJob:
        thread_id = conversation.thread_id
        await self.client.append_thread_message(
            thread_id, wire_message["role"], wire_message["content"]
        )
        run = await self.client.create_run(thread_id, conversation.assistant_id)
        return RunJob(conversation.id, run.id, thread_id)
