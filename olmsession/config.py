import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_MAX_SKIPPED_MESSAGE_KEYS = 1000
DEFAULT_MAX_MESSAGE_GAP = 2000


@dataclass(frozen=True)
class SessionConfig:
    """
    Bounds for the skipped message key cache.

    Attributes:
        max_skipped_message_keys: Max cached keys per session, oldest evicted first
        max_message_gap: How far ahead of (or behind) a chain a message may be
    """
    max_skipped_message_keys: int = DEFAULT_MAX_SKIPPED_MESSAGE_KEYS
    max_message_gap: int = DEFAULT_MAX_MESSAGE_GAP

    def __post_init__(self):
        if self.max_skipped_message_keys <= 0:
            raise ValueError("max_skipped_message_keys must be positive")
        if self.max_message_gap <= 0:
            raise ValueError("max_message_gap must be positive")

    def to_dict(self) -> dict:
        return {
            "max_skipped_message_keys": self.max_skipped_message_keys,
            "max_message_gap": self.max_message_gap,
        }

    @staticmethod
    def from_dict(d: dict) -> "SessionConfig":
        return SessionConfig(
            max_skipped_message_keys=int(d.get("max_skipped_message_keys", DEFAULT_MAX_SKIPPED_MESSAGE_KEYS)),
            max_message_gap=int(d.get("max_message_gap", DEFAULT_MAX_MESSAGE_GAP)),
        )

    @staticmethod
    def from_env() -> "SessionConfig":
        """Build a config from the environment (and a .env file, if present)."""
        load_dotenv()
        return SessionConfig(
            max_skipped_message_keys=int(
                os.getenv("OLM_MAX_SKIPPED_MESSAGE_KEYS", str(DEFAULT_MAX_SKIPPED_MESSAGE_KEYS))
            ),
            max_message_gap=int(os.getenv("OLM_MAX_MESSAGE_GAP", str(DEFAULT_MAX_MESSAGE_GAP))),
        )
