import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def parse_json_message(line: str) -> dict[str, Any] | None:
    """Parse one line as a JSON object.

    Args:
        line: Raw line from the client

    Returns:
        Parsed message dict, or None if the line is blank or not an object
    """
    line = line.strip()
    if not line:
        return None

    try:
        message = json.loads(line)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON received: {e}")
        return None
    if not isinstance(message, dict):
        return None
    return message


def serialize_message(message: dict[str, Any]) -> str:
    """Serialize a message to a single JSON line.

    Values JSON cannot represent (open descriptors, paths) are written as
    their string form.

    Raises:
        ValueError: If the message cannot be serialized at all
    """
    try:
        return json.dumps(
            message, separators=(",", ":"), ensure_ascii=False, default=str
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Failed to serialize message to JSON: {e}") from e
