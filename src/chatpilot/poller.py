"""Polling of assistant runs and the run state machine.

Each run job gets its own asyncio task that wakes up every ``interval``
seconds, fetches the run status, processes the run steps and applies the
state transition:

- ``completed``: stop polling the job, then reconcile the thread messages.
- ``failed``: stop polling the job; nothing is added to the conversation.
- ``requires_action``: with the default ``"complete"`` policy this is handled
  exactly like ``completed``. The ``"submit"`` policy submits tool outputs
  instead and keeps polling.
- anything else: keep polling.

A tick is awaited before the job sleeps again, so ticks of one job never
overlap. Stopping a job prevents future ticks only; a tick in flight finishes
and its results are applied.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .client import Client
from .models import (
    ASSISTANT_ROLE,
    ChatMessage,
    RunJob,
    RunResult,
    RunStatus,
    ToolOutput,
)
from .reconciler import ThreadMessageReconciler
from .steps import RunStepProcessor
from .store import Store
from .tools import FindFiles, NoTool, Tool, render_parameters

logger = logging.getLogger(__name__)

REQUIRES_ACTION_COMPLETE = "complete"
REQUIRES_ACTION_SUBMIT = "submit"


@dataclass
class _Registration:
    job: RunJob
    forced: bool = False
    followed_up: bool = False
    stopped: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None


class RunPoller:
    """Keeps one polling task per run job and drives the run state machine.

    Parameters
    ----------
    client : Client
        Remote API client.
    store : Store
        Conversation store receiving run-step messages.
    step_processor : RunStepProcessor
        Invoked on every tick, whatever the run status.
    reconciler : ThreadMessageReconciler
        Invoked once a run is judged complete.
    tools : Tool, optional
        Produces outputs for required tool calls under the ``"submit"`` policy.
    follow_up_tool : FindFiles, optional
        Tool forced onto the follow-up run issued after a file search step.
    interval : float, default=1.0
        Seconds between ticks of one job.
    requires_action : str, default="complete"
        ``"complete"`` or ``"submit"``.
    """

    def __init__(
        self,
        client: Client,
        store: Store,
        step_processor: RunStepProcessor,
        reconciler: ThreadMessageReconciler,
        tools: Optional[Tool] = None,
        follow_up_tool: Optional[FindFiles] = None,
        interval: float = 1.0,
        requires_action: str = REQUIRES_ACTION_COMPLETE,
    ):
        if requires_action not in (REQUIRES_ACTION_COMPLETE, REQUIRES_ACTION_SUBMIT):
            raise ValueError(f"Unknown requires_action policy: {requires_action!r}")
        self.client = client
        self.store = store
        self.step_processor = step_processor
        self.reconciler = reconciler
        self.tools = tools if tools is not None else NoTool()
        self.follow_up_tool = follow_up_tool if follow_up_tool is not None else FindFiles()
        self.interval = interval
        self.requires_action = requires_action
        self._jobs: Dict[RunJob, _Registration] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._lock = threading.Lock()

    # --- Registry ---
    def start(self, job: RunJob, forced: bool = False) -> None:
        """Starts polling ``job``, replacing any registration under the same key.

        Must be called from within the running event loop.
        """
        registration = _Registration(job=job, forced=forced)
        with self._lock:
            previous = self._jobs.pop(job, None)
            self._jobs[job] = registration
        if previous is not None:
            previous.stopped.set()
        registration.task = asyncio.get_running_loop().create_task(
            self._poll(registration), name=f"poll-{job.run_id}"
        )
        self._tasks.add(registration.task)
        registration.task.add_done_callback(self._tasks.discard)
        logger.info(
            "Polling run %s on thread %s for conversation %s",
            job.run_id,
            job.thread_id,
            job.conversation_id,
        )

    def stop(self, job: RunJob) -> None:
        """Stops polling ``job``. Unknown or already stopped jobs are ignored."""
        with self._lock:
            registration = self._jobs.pop(job, None)
        if registration is None:
            return
        registration.stopped.set()
        logger.info("Stopped polling run %s", job.run_id)

    def stop_conversation(self, conversation_id: str) -> None:
        for job in self.jobs:
            if job.conversation_id == conversation_id:
                self.stop(job)

    def stop_all(self) -> None:
        for job in self.jobs:
            self.stop(job)

    async def aclose(self) -> None:
        """Stops every job and waits for their polling tasks to exit."""
        with self._lock:
            registrations = list(self._jobs.values())
            self._jobs.clear()
        for registration in registrations:
            registration.stopped.set()
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        await asyncio.gather(*tasks, return_exceptions=True)

    def is_active(self, job: RunJob) -> bool:
        with self._lock:
            return job in self._jobs

    @property
    def jobs(self) -> List[RunJob]:
        with self._lock:
            return list(self._jobs)

    @property
    def is_polling(self) -> bool:
        with self._lock:
            return bool(self._jobs)

    # --- Ticks ---
    async def _poll(self, registration: _Registration) -> None:
        while not registration.stopped.is_set():
            try:
                await asyncio.wait_for(
                    registration.stopped.wait(), timeout=self.interval
                )
            except asyncio.TimeoutError:
                pass
            if registration.stopped.is_set():
                break
            try:
                await self._tick(registration)
            except Exception:
                logger.exception(
                    "Polling tick failed for run %s; will retry on next tick",
                    registration.job.run_id,
                )

    async def tick(self, job: RunJob) -> None:
        """Runs a single tick for ``job`` outside of the polling loop."""
        with self._lock:
            registration = self._jobs.get(job)
        await self._tick(registration or _Registration(job=job))

    async def _tick(self, registration: _Registration) -> None:
        job = registration.job
        run = await self.client.retrieve_run(job.thread_id, job.run_id)

        assistant_id = await self.step_processor.process(job)
        if assistant_id and not registration.forced and not registration.followed_up:
            await self._force_follow_up(registration, assistant_id)

        await self._transition(job, run)

    async def _transition(self, job: RunJob, run: RunResult) -> None:
        logger.debug("Run %s is %s", job.run_id, run.status.value)
        if run.status == RunStatus.COMPLETED:
            await self._complete(job)
        elif run.status == RunStatus.FAILED:
            logger.warning("Run %s failed", job.run_id)
            self.stop(job)
        elif run.status == RunStatus.REQUIRES_ACTION:
            if self.requires_action == REQUIRES_ACTION_SUBMIT:
                await self._submit_tool_outputs(job, run)
            else:
                await self._complete(job)

    async def _complete(self, job: RunJob) -> None:
        self.stop(job)
        await self.reconciler.reconcile(job)

    async def _force_follow_up(self, registration: _Registration, assistant_id: str) -> None:
        # The thread refuses new runs while the original one is active; a
        # failed attempt is retried on the next tick.
        job = registration.job
        run = await self.client.create_run(
            job.thread_id,
            assistant_id,
            tools=self.follow_up_tool.get_tools(),
            tool_choice=self.follow_up_tool.tool_choice(),
        )
        registration.followed_up = True
        follow_up = RunJob(job.conversation_id, run.id, job.thread_id)
        self.start(follow_up, forced=True)

        for tool in run.tools or []:
            function = tool.get("function") or {}
            self.store.upsert_run_step_message(
                job.conversation_id,
                ChatMessage(
                    id=run.id,
                    role=ASSISTANT_ROLE,
                    content=(
                        f"function\nname: {function.get('name', '')}\n"
                        f"parameters: {render_parameters(function.get('parameters'))}"
                    ),
                    is_run_step=True,
                ),
            )

        await self._transition(follow_up, run)

    async def _submit_tool_outputs(self, job: RunJob, run: RunResult) -> None:
        if run.required_action is None:
            return
        outputs = []
        for tool_call in run.required_action.submit_tool_outputs.tool_calls:
            name = tool_call.function.name or ""
            arguments = tool_call.function.arguments or "{}"
            self.store.upsert_run_step_message(
                job.conversation_id,
                ChatMessage(
                    id=tool_call.id,
                    role=ASSISTANT_ROLE,
                    content=f"RequiresAction\nfunction\nname: {name}\nargs: {arguments}",
                    is_run_step=True,
                ),
            )
            outputs.append(
                ToolOutput(
                    tool_call_id=tool_call.id,
                    output=self.tools.execute_tool(name, arguments),
                )
            )
        if outputs:
            await self.client.submit_tool_outputs(job.thread_id, job.run_id, outputs)
