"""
Creature Chorus Messages
========================
Inbound control and outbound data messages exchanged with the host.

Messages are plain dicts with a "type" key so they can cross a thread,
process or JSON boundary unchanged:

Inbound:  start, stop, audioTime, setParameter, lightLevel
Outbound: requestAudioTime, phases, notes, visualization, envUpdate
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import MessageType

logger = logging.getLogger(__name__)

INBOUND_TYPES = {
    MessageType.START,
    MessageType.STOP,
    MessageType.AUDIO_TIME,
    MessageType.SET_PARAMETER,
    MessageType.LIGHT_LEVEL,
}


class MessageError(ValueError):
    """Raised when an inbound message cannot be interpreted"""
    pass


@dataclass
class InboundMessage:
    """A validated inbound control message"""
    msg_type: MessageType
    audio_time: Optional[float] = None
    parameter_name: Optional[str] = None
    parameter_value: Optional[float] = None
    light_level: Optional[float] = None


def _finite(value: Any, key: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MessageError(f"{key} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise MessageError(f"{key} must be finite, got {value!r}")
    return number


def parse_inbound(message: Dict[str, Any]) -> InboundMessage:
    """
    Validate an inbound message dict.

    Raises:
        MessageError: unknown type or missing/malformed payload
    """
    if not isinstance(message, dict) or "type" not in message:
        raise MessageError(f"Message without type: {message!r}")

    try:
        msg_type = MessageType(message["type"])
    except ValueError:
        raise MessageError(f"Unknown message type: {message['type']!r}")
    if msg_type not in INBOUND_TYPES:
        raise MessageError(f"Not an inbound message type: {msg_type.value}")

    if msg_type is MessageType.AUDIO_TIME:
        if "audioTime" not in message:
            raise MessageError("audioTime message without audioTime")
        return InboundMessage(msg_type, audio_time=_finite(message["audioTime"], "audioTime"))

    if msg_type is MessageType.SET_PARAMETER:
        name = message.get("parameterName", message.get("name"))
        value = message.get("parameterValue", message.get("value"))
        if not isinstance(name, str) or value is None:
            raise MessageError("setParameter requires a name and a value")
        return InboundMessage(msg_type, parameter_name=name,
                              parameter_value=_finite(value, "parameterValue"))

    if msg_type is MessageType.LIGHT_LEVEL:
        level = _finite(message.get("lightLevel", message.get("value")), "lightLevel")
        if not 0.0 <= level <= 1.0:
            raise MessageError(f"lightLevel must be in [0, 1], got {level}")
        return InboundMessage(msg_type, light_level=level)

    return InboundMessage(msg_type)


# ----------------------------------------------------------------------
# Outbound
# ----------------------------------------------------------------------

def request_audio_time_message() -> Dict[str, Any]:
    return {"type": MessageType.REQUEST_AUDIO_TIME.value}


def phases_message(snapshot) -> Dict[str, Any]:
    return {"type": MessageType.PHASES.value, "phases": snapshot.to_dict()}


def notes_message(notes: List) -> Optional[Dict[str, Any]]:
    """Note batch message, or None when there is nothing to send"""
    if not notes:
        return None
    return {"type": MessageType.NOTES.value, "notes": [n.to_dict() for n in notes]}


def visualization_message(snapshot) -> Dict[str, Any]:
    return {"type": MessageType.VISUALIZATION.value, "visualization": snapshot.to_dict()}


def environment_message(state) -> Dict[str, Any]:
    return {"type": MessageType.ENV_UPDATE.value, "environment": state.to_dict()}
