"""Resolution of accumulated tool calls into conversation messages."""

import logging
import os
from typing import List, Optional, Sequence, Tuple

from .client import Client
from .models import ASSISTANT_ROLE, ChatMessage, FileObject
from .tools import normalize_file_id, parse_file_ids, render_function_call

logger = logging.getLogger(__name__)

FunctionCallFragment = Tuple[str, Optional[str]]

EMPTY_FILENAME = "empty"


class ToolCallResolver:
    """Decodes well-known tool-call shapes and resolves the files they reference."""

    def __init__(self, client: Client):
        self.client = client

    @staticmethod
    def render(calls: Sequence[FunctionCallFragment]) -> str:
        """Renders every ``(name, arguments)`` pair as inline text."""
        return "".join(render_function_call(name, arguments) for name, arguments in calls)

    @staticmethod
    def referenced_file_ids(calls: Sequence[FunctionCallFragment]) -> List[str]:
        """Collects file ids from every pair whose arguments are a file-ids payload.

        Order of first appearance is kept and duplicates are dropped.
        """
        file_ids: List[str] = []
        for _, arguments in calls:
            for file_id in parse_file_ids(arguments) or []:
                if file_id not in file_ids:
                    file_ids.append(file_id)
        return file_ids

    async def fetch_file(self, file_id: str) -> FileObject:
        return await self.client.retrieve_file(normalize_file_id(file_id))

    async def run_step_file_messages(
        self, file_ids: Sequence[str]
    ) -> Tuple[List[ChatMessage], List[str]]:
        """Fetches each file and renders it as a run-step message.

        Files that fail to fetch or carry no filename are skipped.

        Returns
        -------
        Tuple[List[ChatMessage], List[str]]
            The run-step messages (keyed by file id) and the filenames with
            their extension stripped.
        """
        messages: List[ChatMessage] = []
        stems: List[str] = []
        for file_id in file_ids:
            try:
                file = await self.fetch_file(file_id)
            except Exception:
                logger.warning("Could not retrieve file %s", file_id, exc_info=True)
                continue
            if not file.filename:
                continue
            messages.append(
                ChatMessage(
                    id=file.id,
                    role=ASSISTANT_ROLE,
                    content=file.filename,
                    is_run_step=True,
                )
            )
            stems.append(os.path.splitext(file.filename)[0])
        return messages, stems
