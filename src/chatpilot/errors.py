"""Exceptions raised by the engine."""


class ChatPilotError(Exception):
    """Base class for all chatpilot errors."""


class ConversionError(ChatPilotError, ValueError):
    """A message cannot be rendered into the remote API's wire shape."""
