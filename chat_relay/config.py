"""
Environment configuration.

Values are read with ``os.getenv`` at call time, never cached, so a change to
the environment takes effect on the next request. A ``.env`` file in the
working directory is loaded once at import.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from chat_relay.errors import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_UPSTREAM_URL = "https://api.fireworks.ai/inference/v1/chat/completions"
DEFAULT_MEMORY_API_URL = "https://api.mem0.ai"
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


@dataclass(frozen=True)
class Credentials:
    inference_api_key: str
    memory_api_key: str


def load_credentials() -> Credentials:
    """Read both required secrets, raising ConfigurationError if either is absent."""
    api_key = os.getenv("FIREWORKS_API_KEY")
    if not api_key:
        logger.error("FIREWORKS_API_KEY environment variable not set")
        raise ConfigurationError("API key not configured. Please check server environment variables.")

    memory_api_key = os.getenv("MEM_API_KEY")
    if not memory_api_key:
        logger.error("MEM_API_KEY environment variable not set")
        raise ConfigurationError("Memory API key not configured.")

    return Credentials(inference_api_key=api_key, memory_api_key=memory_api_key)


def upstream_url() -> str:
    return os.getenv("FIREWORKS_API_URL", DEFAULT_UPSTREAM_URL)


def upstream_timeout() -> Optional[float]:
    """Seconds to wait on the inference provider; None means no timeout."""
    raw = os.getenv("UPSTREAM_TIMEOUT_SECONDS")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid UPSTREAM_TIMEOUT_SECONDS={raw!r}")
        return None


def memory_api_url() -> str:
    return os.getenv("MEM0_API_URL", DEFAULT_MEMORY_API_URL).rstrip("/")


def app_env() -> str:
    return os.getenv("APP_ENV", "dev")


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format=LOG_FORMAT,
    )
