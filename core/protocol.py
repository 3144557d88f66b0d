"""Wire protocol shared by the hub and the client.

Every frame is a JSON object with a "type" field.

Client -> server:  subscribe {channels}, unsubscribe {channels}, ping
Server -> client:  connected {clientId, channels}, subscribed {channels, invalid?},
                   unsubscribed {channels}, data {channel, data, timestamp},
                   error {message, code}, pong {timestamp}

Timestamps are epoch milliseconds.
"""

import json
import time
from typing import Any, Dict, List, Optional, Union

# Client -> server
SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"
PING = "ping"

# Server -> client
CONNECTED = "connected"
SUBSCRIBED = "subscribed"
UNSUBSCRIBED = "unsubscribed"
DATA = "data"
ERROR = "error"
PONG = "pong"

# Error codes
INVALID_JSON = "INVALID_JSON"
INVALID_CHANNELS = "INVALID_CHANNELS"
UNKNOWN_TYPE = "UNKNOWN_TYPE"


class ProtocolError(Exception):
    """A frame the hub cannot act on. Reported back to the sender."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_message(self) -> Dict[str, Any]:
        return error_message(self.code, self.message)


def now_ms() -> int:
    return int(time.time() * 1000)


def encode(message: Dict[str, Any]) -> str:
    return json.dumps(message, default=str)


def decode(raw: Union[str, bytes]) -> Any:
    """Parse an inbound frame. Raises ProtocolError(INVALID_JSON)."""
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        return json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise ProtocolError(INVALID_JSON, "Invalid JSON message") from exc


def channel_list(message: Any) -> List[Any]:
    """The channels field of a subscribe/unsubscribe frame, checked to be a list."""
    channels = message.get("channels") if isinstance(message, dict) else None
    if not isinstance(channels, list):
        raise ProtocolError(INVALID_CHANNELS, "channels must be an array")
    return channels


# ─── Message builders ───

def connected_message(client_id: str, channels: List[str]) -> Dict[str, Any]:
    return {"type": CONNECTED, "clientId": client_id, "channels": channels}


def subscribed_message(channels: List[str], invalid: Optional[List[Any]] = None) -> Dict[str, Any]:
    message = {"type": SUBSCRIBED, "channels": channels}
    if invalid:
        message["invalid"] = invalid
    return message


def unsubscribed_message(channels: List[Any]) -> Dict[str, Any]:
    return {"type": UNSUBSCRIBED, "channels": channels}


def data_message(channel: str, data: Any, timestamp: Optional[int] = None) -> Dict[str, Any]:
    return {
        "type": DATA,
        "channel": channel,
        "data": data,
        "timestamp": timestamp if timestamp is not None else now_ms(),
    }


def error_message(code: str, message: str) -> Dict[str, Any]:
    return {"type": ERROR, "message": message, "code": code}


def pong_message() -> Dict[str, Any]:
    return {"type": PONG, "timestamp": now_ms()}


def subscribe_request(channels: List[str]) -> Dict[str, Any]:
    return {"type": SUBSCRIBE, "channels": channels}


def unsubscribe_request(channels: List[str]) -> Dict[str, Any]:
    return {"type": UNSUBSCRIBE, "channels": channels}
