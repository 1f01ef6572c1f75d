"""Reconciles server thread history with locally echoed messages."""

import logging

from .client import Client
from .models import ChatMessage, RunJob
from .store import Store

logger = logging.getLogger(__name__)


class ThreadMessageReconciler:
    """Pulls the thread messages newer than the last confirmed one.

    Each content part becomes a non-local message that overwrites the oldest
    pending local placeholder of the same role, or is appended when there is
    none.
    """

    def __init__(self, client: Client, store: Store):
        self.client = client
        self.store = store

    async def reconcile(self, job: RunJob) -> None:
        last_confirmed = self.store.last_non_local_message(job.conversation_id)
        before = last_confirmed.id if last_confirmed else None

        thread_messages = await self.client.list_thread_messages(
            job.thread_id, before=before
        )
        logger.debug(
            "Reconciling %d thread messages against %d placeholders for conversation %s (before=%s)",
            len(thread_messages),
            len(self.store.pending_local_messages(job.conversation_id)),
            job.conversation_id,
            before,
        )
        for item in reversed(thread_messages):
            for part in item.content:
                self.store.reconcile_message(
                    job.conversation_id,
                    ChatMessage(
                        id=item.id,
                        role=item.role,
                        content=part.text.value if part.text else "",
                        is_local=False,
                    ),
                )
