"""Concrete implementations for conversation stores.

The store is the single authority over conversation state. Every mutation made
by the streaming merger, the run poller and user-initiated sends funnels
through it, and each mutating method is atomic.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from .models import ChatMessage, Conversation, ConversationType

logger = logging.getLogger(__name__)


class Store(ABC):
    """Interface for holding conversations for the lifetime of the process."""

    @abstractmethod
    def create_conversation(
        self,
        type: ConversationType = ConversationType.NORMAL,
        assistant_id: Optional[str] = None,
    ) -> Conversation:
        """Creates and registers a new, empty conversation."""
        pass

    def create_assistant_conversation(self, assistant_id: str) -> Conversation:
        return self.create_conversation(ConversationType.ASSISTANT, assistant_id)

    @abstractmethod
    def get_conversation(self, convo_id: str) -> Optional[Conversation]:
        pass

    @abstractmethod
    def list_conversations(self) -> List[Conversation]:
        pass

    @abstractmethod
    def delete_conversation(self, convo_id: str) -> None:
        pass

    @abstractmethod
    def select_conversation(self, convo_id: Optional[str]) -> None:
        pass

    @property
    @abstractmethod
    def selected_conversation(self) -> Optional[Conversation]:
        pass

    @abstractmethod
    def bind_thread(self, convo_id: str, thread_id: str) -> None:
        """Associates a server thread with an assistant conversation."""
        pass

    @abstractmethod
    def append_message(self, convo_id: str, message: ChatMessage) -> None:
        pass

    @abstractmethod
    def meld_message(self, convo_id: str, message: ChatMessage) -> None:
        """Folds a streamed delta into the message sharing its id, or appends it."""
        pass

    @abstractmethod
    def upsert_run_step_message(self, convo_id: str, message: ChatMessage) -> None:
        """Replaces the run-step message sharing its id, or appends it."""
        pass

    @abstractmethod
    def reconcile_message(self, convo_id: str, message: ChatMessage) -> None:
        """Lands a server-confirmed message on a pending local placeholder."""
        pass

    @abstractmethod
    def pending_local_messages(self, convo_id: str) -> List[ChatMessage]:
        """Local placeholders still awaiting confirmation, oldest first."""
        pass

    @abstractmethod
    def last_non_local_message(self, convo_id: str) -> Optional[ChatMessage]:
        """The latest server-confirmed thread message, used as pagination cursor."""
        pass

    @abstractmethod
    def set_error(self, convo_id: str, error: Optional[Exception]) -> None:
        """Records (or clears, with ``None``) the last completion error."""
        pass

    @property
    @abstractmethod
    def conversation_errors(self) -> Mapping[str, Exception]:
        """Read-only view of the per-conversation error map."""
        pass

    @abstractmethod
    def set_product_ids(self, product_ids: List[str]) -> None:
        pass

    @property
    @abstractmethod
    def product_ids(self) -> List[str]:
        pass


class InMemory(Store):
    """Keeps conversations in a process-local dictionary."""

    def __init__(self, id_provider: Optional[Callable[[], str]] = None):
        self._id_provider = id_provider or (lambda: str(uuid.uuid4()))
        self._conversations: Dict[str, Conversation] = {}
        self._errors: Dict[str, Exception] = {}
        self._product_ids: List[str] = []
        self._selected_id: Optional[str] = None
        self._lock = threading.RLock()

    # --- Conversation lifecycle ---
    def create_conversation(self, type=ConversationType.NORMAL, assistant_id=None):
        conversation = Conversation(
            id=self._id_provider(), type=type, assistant_id=assistant_id
        )
        with self._lock:
            self._conversations[conversation.id] = conversation
        logger.debug("Created %s conversation %s", conversation.type.value, conversation.id)
        return conversation

    def get_conversation(self, convo_id):
        return self._conversations.get(convo_id)

    def list_conversations(self):
        with self._lock:
            return list(self._conversations.values())

    def delete_conversation(self, convo_id):
        with self._lock:
            self._conversations.pop(convo_id, None)
            self._errors.pop(convo_id, None)
            if self._selected_id == convo_id:
                self._selected_id = None

    def select_conversation(self, convo_id):
        with self._lock:
            self._selected_id = convo_id

    @property
    def selected_conversation(self):
        if self._selected_id is None:
            return None
        return self._conversations.get(self._selected_id)

    def bind_thread(self, convo_id, thread_id):
        with self._lock:
            conversation = self._conversations.get(convo_id)
            if conversation is not None:
                conversation.thread_id = thread_id

    # --- Message mutations ---
    def append_message(self, convo_id, message):
        with self._lock:
            conversation = self._conversations.get(convo_id)
            if conversation is None:
                return
            conversation.messages.append(message)

    def meld_message(self, convo_id, message):
        with self._lock:
            conversation = self._conversations.get(convo_id)
            if conversation is None:
                return
            messages = conversation.messages
            for index, previous in enumerate(messages):
                if previous.id == message.id:
                    messages[index] = ChatMessage(
                        id=message.id,
                        role=message.role,
                        content=previous.content + message.content,
                        created_at=message.created_at,
                    )
                    return
            messages.append(message)

    def upsert_run_step_message(self, convo_id, message):
        with self._lock:
            conversation = self._conversations.get(convo_id)
            if conversation is None:
                return
            messages = conversation.messages
            for index, previous in enumerate(messages):
                if previous.is_run_step and previous.id == message.id:
                    messages[index] = message
                    return
            messages.append(message)

    def reconcile_message(self, convo_id, message):
        # Pending placeholders are consumed oldest first, one per server
        # message of the same role.
        with self._lock:
            conversation = self._conversations.get(convo_id)
            if conversation is None:
                return
            messages = conversation.messages
            placeholder = next(
                (
                    pending
                    for pending in self.pending_local_messages(convo_id)
                    if pending.role == message.role
                ),
                None,
            )
            if placeholder is None:
                messages.append(message)
                return
            index = next(i for i, m in enumerate(messages) if m is placeholder)
            messages[index] = message

    def pending_local_messages(self, convo_id):
        with self._lock:
            conversation = self._conversations.get(convo_id)
            if conversation is None:
                return []
            return [m for m in conversation.messages if m.is_local]

    def last_non_local_message(self, convo_id):
        conversation = self._conversations.get(convo_id)
        if conversation is None:
            return None
        # Run-step ids are not thread message ids, so they never act as cursors.
        for message in reversed(conversation.messages):
            if not message.is_local and not message.is_run_step:
                return message
        return None

    # --- Errors & product ids ---
    def set_error(self, convo_id, error):
        with self._lock:
            if error is None:
                self._errors.pop(convo_id, None)
            else:
                self._errors[convo_id] = error

    @property
    def conversation_errors(self):
        return MappingProxyType(self._errors)

    def set_product_ids(self, product_ids):
        with self._lock:
            self._product_ids = list(product_ids)

    @property
    def product_ids(self):
        return list(self._product_ids)
