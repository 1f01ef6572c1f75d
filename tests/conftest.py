"""
Core pytest configuration and fixtures for chatpilot testing.

This module provides shared test fixtures, configuration, and utilities that
support the pillar-based testing architecture. The remote client is always a
mock; no test touches the network.
"""

import itertools
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from chatpilot.client import Client
from chatpilot.models import (
    ASSISTANT_ROLE,
    USER_ROLE,
    ChatMessage,
    ChatStreamChunk,
    CodeInterpreterCall,
    CodeInterpreterOutput,
    Delta,
    FileObject,
    FunctionCall,
    MessageContentPart,
    RunResult,
    RunStatus,
    RunStep,
    StepDetails,
    StepToolCall,
    StreamChoice,
    TextContent,
    ThreadMessage,
    ToolCallDelta,
)
from chatpilot.poller import RunPoller
from chatpilot.reconciler import ThreadMessageReconciler
from chatpilot.resolver import ToolCallResolver
from chatpilot.steps import RunStepProcessor
from chatpilot.store import InMemory
from chatpilot.streaming import StreamingMerger
from chatpilot.tools import WeatherLookup

# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages() -> List[ChatMessage]:
    """Sample chat messages for testing."""
    return [
        ChatMessage(role=USER_ROLE, content="Hello, how are you?"),
        ChatMessage(role=ASSISTANT_ROLE, content="I'm doing well, thank you!"),
    ]


@pytest.fixture
def store() -> InMemory:
    """In-memory store handing out predictable conversation ids."""
    counter = itertools.count(1)
    return InMemory(id_provider=lambda: f"conv-{next(counter)}")


@pytest.fixture
def normal_conversation(store):
    return store.create_conversation()


@pytest.fixture
def assistant_conversation(store):
    return store.create_assistant_conversation("asst_1")


# ===== WIRE RECORD BUILDERS =====


def build_chunk(
    id: str,
    content: Optional[str] = None,
    role: Optional[str] = None,
    tool_calls: Optional[List[tuple]] = None,
    finish_reason: Optional[str] = None,
    created: int = 1_700_000_000,
) -> ChatStreamChunk:
    """Builds a single-choice stream chunk; ``tool_calls`` holds (name, arguments) pairs."""
    deltas = None
    if tool_calls is not None:
        deltas = [
            ToolCallDelta(index=i, function=FunctionCall(name=name, arguments=arguments))
            for i, (name, arguments) in enumerate(tool_calls)
        ]
    return ChatStreamChunk(
        id=id,
        created=created,
        choices=[
            StreamChoice(
                delta=Delta(role=role, content=content, tool_calls=deltas),
                finish_reason=finish_reason,
            )
        ],
    )


def build_run(
    status: RunStatus,
    id: str = "run_1",
    thread_id: str = "thread_1",
    **kwargs,
) -> RunResult:
    return RunResult(id=id, thread_id=thread_id, assistant_id="asst_1", status=status, **kwargs)


def build_function_step(step_id: str, call_id: str, name: str, arguments: str) -> RunStep:
    return RunStep(
        id=step_id,
        assistant_id="asst_1",
        step_details=StepDetails(
            tool_calls=[
                StepToolCall(
                    id=call_id,
                    type="function",
                    function=FunctionCall(name=name, arguments=arguments),
                )
            ]
        ),
    )


def build_file_search_step(step_id: str, call_id: str, assistant_id: str = "asst_1") -> RunStep:
    return RunStep(
        id=step_id,
        assistant_id=assistant_id,
        step_details=StepDetails(tool_calls=[StepToolCall(id=call_id, type="file_search")]),
    )


def build_code_step(step_id: str, call_id: str, code: str, logs: Optional[str]) -> RunStep:
    outputs = [CodeInterpreterOutput(logs=logs)] if logs is not None else []
    return RunStep(
        id=step_id,
        assistant_id="asst_1",
        step_details=StepDetails(
            tool_calls=[
                StepToolCall(
                    id=call_id,
                    type="code_interpreter",
                    code_interpreter=CodeInterpreterCall(input=code, outputs=outputs),
                )
            ]
        ),
    )


def build_thread_message(id: str, role: str, *texts: str) -> ThreadMessage:
    return ThreadMessage(
        id=id,
        role=role,
        content=[MessageContentPart(text=TextContent(value=text)) for text in texts],
    )


async def async_iter(items):
    """Yields ``items`` in order, raising any exception instance met on the way."""
    for item in items:
        if isinstance(item, Exception):
            raise item
        yield item


@pytest.fixture
def make_chunk():
    return build_chunk


@pytest.fixture
def make_run():
    return build_run


@pytest.fixture
def make_thread_message():
    return build_thread_message


@pytest.fixture
def make_function_step():
    return build_function_step


@pytest.fixture
def make_file_search_step():
    return build_file_search_step


@pytest.fixture
def make_code_step():
    return build_code_step


@pytest.fixture
def stream_of():
    """Returns a factory turning a list of chunks into an async stream."""
    return async_iter


# ===== MOCK FIXTURES =====


@pytest.fixture
def mock_client():
    """Mock remote client with coroutine operations and empty defaults."""
    mock = MagicMock(spec=Client)
    mock.create_thread = AsyncMock(return_value="thread_1")
    mock.create_run = AsyncMock(return_value=build_run(RunStatus.QUEUED))
    mock.append_thread_message = AsyncMock(return_value=None)
    mock.retrieve_run = AsyncMock(return_value=build_run(RunStatus.IN_PROGRESS))
    mock.list_run_steps = AsyncMock(return_value=[])
    mock.list_thread_messages = AsyncMock(return_value=[])
    mock.retrieve_file = AsyncMock(
        side_effect=lambda file_id: FileObject(id=file_id, filename=f"{file_id}.pdf")
    )
    mock.stream_chat_completion = MagicMock(side_effect=lambda *a, **kw: async_iter([]))
    mock.submit_tool_outputs = AsyncMock(return_value=build_run(RunStatus.QUEUED))
    mock.aclose = AsyncMock(return_value=None)
    return mock


# ===== PILLAR FIXTURES =====


@pytest.fixture
def resolver(mock_client):
    return ToolCallResolver(mock_client)


@pytest.fixture
def merger(mock_client, store, resolver):
    return StreamingMerger(mock_client, store, resolver, WeatherLookup())


@pytest.fixture
def step_processor(mock_client, store, resolver):
    return RunStepProcessor(mock_client, store, resolver)


@pytest.fixture
def reconciler(mock_client, store):
    return ThreadMessageReconciler(mock_client, store)


@pytest_asyncio.fixture
async def poller(mock_client, store, step_processor, reconciler):
    poller = RunPoller(mock_client, store, step_processor, reconciler, interval=0.01)
    yield poller
    await poller.aclose()


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow-running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
