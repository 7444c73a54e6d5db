"""Bridge protocol messages exchanged with a pipe-connected host"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class MessageType(Enum):
    """Types of protocol messages"""

    SNAPSHOT_SUBMIT = "snapshot_submit"
    ELEMENT_ADDED = "element_added"
    ELEMENT_MOVED = "element_moved"
    ELEMENT_DELETED = "element_deleted"
    PING = "ping"
    LOG = "log"
    ACK_SUCCESS = "ack_success"
    ACK_FAILURE = "ack_failure"
    DROP_REQUEST = "drop_request"
    DELETE_REQUEST = "delete_request"
    DUPLICATE_REQUEST = "duplicate_request"
    MOVE_REQUEST = "move_request"
    WRAP_REQUEST = "wrap_request"


ELEMENT_MESSAGE_TYPES = (
    MessageType.ELEMENT_ADDED,
    MessageType.ELEMENT_MOVED,
    MessageType.ELEMENT_DELETED,
)


@dataclass
class Message:
    """Base protocol message"""

    msg_type: MessageType
    payload: Dict[str, Any]

    def json_serialize(self) -> str:
        """
        Serialize message to a single-line JSON string

        Returns:
            JSON text without embedded newlines
        """
        data = {"msg_type": self.msg_type.value, "payload": self.payload}
        return json.dumps(data, separators=(",", ":"))

    @staticmethod
    def json_deserialize(data: str) -> "Message":
        """
        Deserialize message from JSON string

        Args:
            data: JSON string

        Returns:
            Deserialized Message object

        Raises:
            ValueError: If the text is not a valid message
        """
        try:
            parsed = json.loads(data)
            msg_type = MessageType(parsed["msg_type"])
            payload = parsed["payload"]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise ValueError(f"Malformed protocol message: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValueError("Protocol message payload must be an object")
        return Message(msg_type=msg_type, payload=payload)


class MessageBuilder:
    """Builds protocol messages for outgoing bridge calls"""

    @staticmethod
    def snapshotSubmitMessage_create(snapshot_json: str) -> Message:
        """
        Create snapshot submission message

        Args:
            snapshot_json: Serialized snapshot, sent verbatim

        Returns:
            Snapshot message
        """
        return Message(msg_type=MessageType.SNAPSHOT_SUBMIT, payload={"snapshot": snapshot_json})

    @staticmethod
    def elementMessage_create(
        msg_type: MessageType,
        element_id: str,
        parent_id: str,
        index: int,
    ) -> Message:
        """
        Create element added/moved/deleted notification

        Args:
            msg_type: One of the element message types
            element_id: Affected element
            parent_id: Parent after the change (before it, for deletions)
            index: Child-list position

        Returns:
            Element notification message
        """
        if msg_type not in ELEMENT_MESSAGE_TYPES:
            raise ValueError(f"{msg_type.value} is not an element notification")
        return Message(
            msg_type=msg_type,
            payload={"element_id": element_id, "parent_id": parent_id, "index": index},
        )

    @staticmethod
    def pingMessage_create() -> Message:
        """Create ping message"""
        return Message(msg_type=MessageType.PING, payload={})

    @staticmethod
    def logMessage_create(text: str) -> Message:
        """Create host log message"""
        return Message(msg_type=MessageType.LOG, payload={"message": text})


class MessageParser:
    """Parses incoming host messages"""

    @staticmethod
    def dropRequest_parse(msg: Message) -> tuple[str, float, float]:
        """
        Parse a host drop request

        Args:
            msg: Protocol message of type DROP_REQUEST

        Returns:
            Tuple of (tag, x, y)
        """
        if msg.msg_type != MessageType.DROP_REQUEST:
            raise ValueError(f"Expected drop_request, got {msg.msg_type.value}")
        payload = msg.payload
        try:
            return str(payload["tag"]), float(payload["x"]), float(payload["y"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed drop_request payload: {exc}") from exc


    @staticmethod
    def elementRequest_parse(msg: Message) -> str:
        """
        Parse a host delete or duplicate request

        Args:
            msg: Protocol message of type DELETE_REQUEST or DUPLICATE_REQUEST

        Returns:
            Target element id
        """
        if msg.msg_type not in (MessageType.DELETE_REQUEST, MessageType.DUPLICATE_REQUEST):
            raise ValueError(f"{msg.msg_type.value} is not an element request")
        element_id = msg.payload.get("element_id")
        if not isinstance(element_id, str) or not element_id:
            raise ValueError(f"Malformed {msg.msg_type.value} payload: missing element_id")
        return element_id

    @staticmethod
    def moveRequest_parse(msg: Message) -> tuple[str, str]:
        """
        Parse a host move request

        Returns:
            Tuple of (element_id, direction)
        """
        if msg.msg_type != MessageType.MOVE_REQUEST:
            raise ValueError(f"Expected move_request, got {msg.msg_type.value}")
        payload = msg.payload
        element_id = payload.get("element_id")
        direction = payload.get("direction")
        if not isinstance(element_id, str) or not element_id:
            raise ValueError("Malformed move_request payload: missing element_id")
        if direction not in ("up", "down"):
            raise ValueError(f"Malformed move_request payload: direction {direction!r}")
        return element_id, direction

    @staticmethod
    def wrapRequest_parse(msg: Message) -> list[str]:
        """Parse a host wrap request into the ids to wrap"""
        if msg.msg_type != MessageType.WRAP_REQUEST:
            raise ValueError(f"Expected wrap_request, got {msg.msg_type.value}")
        element_ids = msg.payload.get("element_ids")
        if (
            not isinstance(element_ids, list)
            or not element_ids
            or not all(isinstance(element_id, str) for element_id in element_ids)
        ):
            raise ValueError("Malformed wrap_request payload: element_ids must be a non-empty list")
        return list(element_ids)
