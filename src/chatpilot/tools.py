"""Concrete implementations for tool declarations and tool-call payloads."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .models import FILE_ID_PREFIX, FileIdsCall

logger = logging.getLogger(__name__)

DEFAULT_TOOL_OUTPUT = "Done"


class Tool(ABC):
    """Interface for tools declared to the remote model."""

    @abstractmethod
    def get_tools(self) -> List[Dict[str, Any]]:
        """Returns a list of tool specifications for the LLM."""
        return []

    def execute_tool(self, tool_name: str, arguments: Optional[str] = None) -> str:
        """Produces the output submitted back for a required tool call.

        The engine never runs tools locally; the default acknowledges the call.
        """
        return DEFAULT_TOOL_OUTPUT


class NoTool(Tool):
    """Default handler that declares no tools."""

    def get_tools(self) -> List[Dict[str, Any]]:
        return []


class WeatherLookup(Tool):
    """Pass-through weather tool offered on every streaming completion."""

    name = "getWeatherData"

    def get_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": self.name,
                    "description": "Get the current weather in a given location",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "location": {
                                "type": "string",
                                "description": "The city and state, e.g. San Francisco, CA",
                            }
                        },
                        "required": ["location"],
                    },
                },
            }
        ]


class FindFiles(Tool):
    """File finder forced onto a run after a file search step."""

    name = "find_files"

    def get_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": self.name,
                    "description": (
                        "Find uploaded files that match the given criteria, return the "
                        f"files ids(start with specific prefix `{FILE_ID_PREFIX}`), "
                        "sorted by relevance."
                    ),
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "file_ids": {"type": "array", "items": {"type": "string"}}
                        },
                        "required": ["file_ids"],
                    },
                },
            }
        ]

    def tool_choice(self) -> Dict[str, Any]:
        """The ``tool_choice`` value restricting a run to this tool."""
        return {"type": "function", "function": {"name": self.name}}


# --- Payload helpers ---
def parse_file_ids(arguments: Optional[str]) -> Optional[List[str]]:
    """Decode a ``{"file_ids": [...]}`` argument string.

    Returns ``None`` when the arguments are missing or are not a file-ids
    payload; decode failures are not errors.
    """
    if not arguments:
        return None
    try:
        return FileIdsCall.model_validate_json(arguments).file_ids
    except ValidationError:
        logger.debug("Arguments are not a file-ids payload: %r", arguments)
        return None


def normalize_file_id(file_id: str) -> str:
    if file_id.startswith(FILE_ID_PREFIX):
        return file_id
    return FILE_ID_PREFIX + file_id


def render_function_call(name: str, arguments: Optional[str]) -> str:
    return f"Function call: name={name} arguments={arguments or ''}\n"


def render_parameters(parameters: Any) -> str:
    if parameters is None:
        return ""
    return json.dumps(parameters, sort_keys=True)
