"""Turns fetched run steps into run-step messages."""

import logging
from typing import Optional

from .client import Client
from .models import ASSISTANT_ROLE, ChatMessage, RunJob, StepToolCall
from .resolver import ToolCallResolver
from .store import Store
from .tools import parse_file_ids

logger = logging.getLogger(__name__)


def describe_step(tool_call: StepToolCall) -> str:
    """Renders the generic run-step text for one tool call."""
    if tool_call.type == "file_search":
        return f"RUN STEP: {tool_call.type}"
    if tool_call.type == "code_interpreter":
        code = tool_call.code_interpreter
        code_input = code.input if code else ""
        logs = ""
        if code and code.outputs:
            logs = code.outputs[0].logs or ""
        return f"code_interpreter\ninput:\n{code_input}\noutputs: {logs}"
    function = tool_call.function
    name = function.name if function and function.name else ""
    arguments = function.arguments if function and function.arguments else "{}"
    return f"get function\nname: {name}\nargs: {arguments}"


class RunStepProcessor:
    """Upserts one run-step message per tool call of a run.

    Function calls whose arguments reference files are resolved into one
    message per file instead, and their filenames replace the store's product
    ids.
    """

    def __init__(self, client: Client, store: Store, resolver: ToolCallResolver):
        self.client = client
        self.store = store
        self.resolver = resolver

    async def process(self, job: RunJob) -> Optional[str]:
        """Processes the steps of ``job``'s run.

        Returns
        -------
        Optional[str]
            The assistant id of the last file search step, which needs a
            forced follow-up run, or ``None``.
        """
        steps = await self.client.list_run_steps(job.thread_id, job.run_id)

        assistant_id = None
        # Steps and the tool calls within a step both arrive newest first.
        for step in reversed(steps):
            for tool_call in reversed(step.step_details.tool_calls or []):
                if tool_call.type == "file_search":
                    assistant_id = step.assistant_id

                arguments = tool_call.function.arguments if tool_call.function else None
                file_ids = parse_file_ids(arguments)
                if file_ids:
                    await self._resolve_files(job, file_ids)
                    continue

                self.store.upsert_run_step_message(
                    job.conversation_id,
                    ChatMessage(
                        id=tool_call.id,
                        role=ASSISTANT_ROLE,
                        content=describe_step(tool_call),
                        is_run_step=True,
                    ),
                )
        return assistant_id

    async def _resolve_files(self, job: RunJob, file_ids) -> None:
        messages, stems = await self.resolver.run_step_file_messages(file_ids)
        for message in messages:
            self.store.upsert_run_step_message(job.conversation_id, message)
        if stems:
            logger.debug("Run %s referenced products %s", job.run_id, stems)
            self.store.set_product_ids(stems)
