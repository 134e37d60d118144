#!/usr/bin/env python3
"""
Send Chat - Posts one message to a running chat relay and prints the reply

Environment Variables:
  RELAY_URL (optional, default: http://127.0.0.1:8000): Relay base URL
  MODEL (required): Upstream model id
  THREAD_ID (optional): Sent as currentThreadId
  STREAM (optional, default: false): "true" to request a streamed reply

Usage:
  python scripts/send_chat.py "What did you learn today?"
"""

import os
import sys
import logging
from pathlib import Path

import requests

# Ensure repo root is on PYTHONPATH BEFORE importing chat_relay
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from chat_relay.reflections import parse_reflections
from chat_relay.relay import extract_reply_text

logging.basicConfig(
    level=logging.INFO,
    format="[%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("send_chat")


def _env_or_error(key: str) -> str:
    """Get environment variable or exit with error."""
    val = os.getenv(key)
    if not val:
        logger.error(f"{key} not set")
        sys.exit(1)
    return val


def _print_stream(response: requests.Response) -> None:
    for chunk in response.iter_content(chunk_size=None):
        sys.stdout.write(chunk.decode("utf-8", errors="replace"))
        sys.stdout.flush()
    sys.stdout.write("\n")


def _print_reply(data: dict) -> None:
    reply = extract_reply_text(data)
    print(reply)

    reflections = parse_reflections(reply)
    if reflections:
        print()
        for r in reflections:
            print(f"[{r.type}] {r.content}")


def main() -> int:
    if len(sys.argv) < 2:
        print(__doc__, file=sys.stderr)
        return 1

    base_url = os.getenv("RELAY_URL", "http://127.0.0.1:8000").rstrip("/")
    stream = os.getenv("STREAM", "false").lower() == "true"
    payload = {
        "model": _env_or_error("MODEL"),
        "messages": [{"role": "user", "content": " ".join(sys.argv[1:])}],
        "stream": stream,
    }
    thread_id = os.getenv("THREAD_ID")
    if thread_id:
        payload["currentThreadId"] = thread_id

    logger.info(f"POST {base_url}/api/chat stream={stream}")
    try:
        response = requests.post(f"{base_url}/api/chat", json=payload, stream=stream, timeout=300)
    except requests.RequestException as e:
        logger.error(f"Failed to reach relay: {e}")
        return 1

    if not response.ok:
        logger.error(f"Relay error {response.status_code}: {response.text}")
        return 1

    if stream:
        _print_stream(response)
    else:
        _print_reply(response.json())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
