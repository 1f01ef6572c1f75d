"""Runtime settings for the engine.

Values come from explicit constructor arguments first, then from environment
variables (``CHATPILOT_*`` for engine behavior, the standard ``OPENAI_*`` names
for the API client).
"""

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "CHATPILOT_"


class Settings(BaseModel):
    """Engine configuration."""

    default_model: str = "gpt-4o"
    poll_interval: float = Field(default=1.0, gt=0)
    requires_action: Literal["complete", "submit"] = "complete"
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from the environment, letting ``overrides`` win.

        Parameters
        ----------
        **overrides
            Explicit values for any field. ``None`` values are ignored so
            callers can forward optional arguments unchanged.

        Returns
        -------
        Settings
            The validated settings.

        Raises
        ------
        pydantic.ValidationError
            If an environment value does not validate (e.g. a non-numeric
            ``CHATPILOT_POLL_INTERVAL``).
        """
        values = {}
        env_map = {
            "default_model": ENV_PREFIX + "DEFAULT_MODEL",
            "poll_interval": ENV_PREFIX + "POLL_INTERVAL",
            "requires_action": ENV_PREFIX + "REQUIRES_ACTION",
            "api_key": "OPENAI_API_KEY",
            "base_url": "OPENAI_BASE_URL",
        }
        for field_name, env_name in env_map.items():
            value = os.environ.get(env_name)
            if value:
                values[field_name] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
