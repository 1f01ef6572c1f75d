"""
The main entrypoint for the chatpilot package.

This module contains the primary ChatPilot class, which wires the engine's pillars
together. Every pillar is an abstract base class with a default implementation, so
any of them can be swapped for a custom one.
"""

from typing import List, Mapping, Optional

from . import client, config, store, tools
from .config import Settings
from .models import ChatMessage, Conversation, ConversationType
from .orchestrator import Orchestrator
from .poller import RunPoller
from .reconciler import ThreadMessageReconciler
from .resolver import ToolCallResolver
from .steps import RunStepProcessor
from .streaming import StreamingMerger


class ChatPilot:
    """
    Conversation orchestration engine for streaming chat and assistant runs.

    The constructor uses concrete default implementations, making it easy to get
    started while remaining fully customizable.
    """

    def __init__(
        self,
        client: Optional["client.Client"] = None,
        store: Optional["store.Store"] = None,
        tools: Optional["tools.Tool"] = None,
        settings: Optional["config.Settings"] = None,
    ) -> None:
        """
        Initialize the engine with configurable pillars.

        Parameters
        ----------
        client : client.Client, optional
            Remote API client. Defaults to client.OpenAI() built from the
            settings' api_key and base_url.
        store : store.Store, optional
            Conversation store. Defaults to store.InMemory().
        tools : tools.Tool, optional
            Tools declared on streaming completions and used to answer required
            tool calls. Defaults to tools.WeatherLookup().
        settings : config.Settings, optional
            Engine settings. Defaults to config.Settings.from_env().

        Examples
        --------
        >>> pilot = ChatPilot(settings=Settings(poll_interval=0.5))
        >>> convo = pilot.create_conversation()
        >>> await pilot.send_message(ChatMessage(role="user", content="Hi"), convo.id)
        """
        client_module = globals()["client"]
        store_module = globals()["store"]
        tools_module = globals()["tools"]
        config_module = globals()["config"]

        self.settings = settings if settings is not None else config_module.Settings.from_env()
        self._owns_client = client is None
        if client is not None:
            self.client = client
        else:
            self.client = client_module.OpenAI(
                api_key=self.settings.api_key, base_url=self.settings.base_url
            )
        self.store = store if store is not None else store_module.InMemory()
        self.tools = tools if tools is not None else tools_module.WeatherLookup()

        self.resolver = ToolCallResolver(self.client)
        self.merger = StreamingMerger(self.client, self.store, self.resolver, self.tools)
        self.step_processor = RunStepProcessor(self.client, self.store, self.resolver)
        self.reconciler = ThreadMessageReconciler(self.client, self.store)
        self.poller = RunPoller(
            self.client,
            self.store,
            self.step_processor,
            self.reconciler,
            tools=self.tools,
            follow_up_tool=tools_module.FindFiles(),
            interval=self.settings.poll_interval,
            requires_action=self.settings.requires_action,
        )
        self.orchestrator = Orchestrator(
            self.client,
            self.store,
            self.merger,
            self.poller,
            default_model=self.settings.default_model,
        )

    # --- Conversations ---
    def create_conversation(
        self,
        type: ConversationType = ConversationType.NORMAL,
        assistant_id: Optional[str] = None,
    ) -> Conversation:
        return self.store.create_conversation(type, assistant_id)

    def create_assistant_conversation(self, assistant_id: str) -> Conversation:
        return self.store.create_assistant_conversation(assistant_id)

    def select_conversation(self, convo_id: Optional[str]) -> None:
        self.store.select_conversation(convo_id)

    def delete_conversation(self, convo_id: str) -> None:
        self.poller.stop_conversation(convo_id)
        self.store.delete_conversation(convo_id)

    @property
    def conversations(self) -> List[Conversation]:
        return self.store.list_conversations()

    @property
    def selected_conversation(self) -> Optional[Conversation]:
        return self.store.selected_conversation

    @property
    def conversation_errors(self) -> Mapping[str, Exception]:
        return self.store.conversation_errors

    @property
    def product_ids(self) -> List[str]:
        return self.store.product_ids

    @property
    def is_sending_message(self) -> bool:
        return self.poller.is_polling

    # --- Messaging ---
    async def send_message(
        self, message: ChatMessage, conversation_id: str, model: Optional[str] = None
    ) -> None:
        await self.orchestrator.send_message(message, conversation_id, model)

    async def complete_chat(self, conversation_id: str, model: Optional[str] = None) -> None:
        await self.orchestrator.complete_chat(conversation_id, model)

    async def aclose(self) -> None:
        """Stops every polling job and waits for the polling tasks to exit.

        A client built by the engine is closed as well; an injected client is
        left to its owner.
        """
        await self.poller.aclose()
        if self._owns_client:
            await self.client.aclose()
