"""
Host bridge contract.

The host owns the element-tree model. canvascore reaches it only through the
`HostBridge` protocol; the host answers snapshot submissions later by calling
`CanvasEditor.ack_success()` or `CanvasEditor.ack_failure()`.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, TextIO

from canvascore.common.errors import BridgeUnavailable
from canvascore.protocol.message import Message, MessageBuilder, MessageType

logger = logging.getLogger(__name__)

__all__ = [
    "HostBridge",
    "REQUIRED_BRIDGE_METHODS",
    "StreamHostBridge",
    "bridge_check",
]

REQUIRED_BRIDGE_METHODS: tuple[str, ...] = (
    "snapshot_submit",
    "element_added",
    "element_moved",
    "element_deleted",
)


class HostBridge(Protocol):
    """Calls the core makes into the host application"""

    def snapshot_submit(self, payload: str) -> None:
        """Submit serialized snapshot; fire-and-forget"""
        ...

    def element_added(self, element_id: str, parent_id: str, index: int) -> None:
        ...

    def element_moved(self, element_id: str, parent_id: str, index: int) -> None:
        ...

    def element_deleted(self, element_id: str, parent_id: str, index: int) -> None:
        ...


def bridge_check(bridge: Any) -> HostBridge:
    """
    Verify a bridge object exposes every required call

    Args:
        bridge: Candidate bridge, possibly None

    Returns:
        The same object, typed as `HostBridge`

    Raises:
        BridgeUnavailable: If the bridge is missing or incomplete
    """
    if bridge is None:
        raise BridgeUnavailable("No host bridge supplied")
    missing: list[str] = [
        name for name in REQUIRED_BRIDGE_METHODS if not callable(getattr(bridge, name, None))
    ]
    if missing:
        raise BridgeUnavailable(f"Host bridge lacks required methods: {', '.join(missing)}")
    return bridge


class StreamHostBridge:
    """Host bridge writing one JSON protocol message per line to a text stream"""

    def __init__(self, stream: TextIO) -> None:
        """
        Initialize bridge

        Args:
            stream: Writable text stream (pipe, socket file, stdout)
        """
        self._stream: TextIO = stream
        self.messages_sent: int = 0

    def message_send(self, message: Message) -> None:
        """Write one message and flush"""
        self._stream.write(message.json_serialize() + "\n")
        self._stream.flush()
        self.messages_sent += 1

    def snapshot_submit(self, payload: str) -> None:
        self.message_send(MessageBuilder.snapshotSubmitMessage_create(payload))

    def element_added(self, element_id: str, parent_id: str, index: int) -> None:
        self.message_send(MessageBuilder.elementMessage_create(
            MessageType.ELEMENT_ADDED, element_id, parent_id, index
        ))

    def element_moved(self, element_id: str, parent_id: str, index: int) -> None:
        self.message_send(MessageBuilder.elementMessage_create(
            MessageType.ELEMENT_MOVED, element_id, parent_id, index
        ))

    def element_deleted(self, element_id: str, parent_id: str, index: int) -> None:
        self.message_send(MessageBuilder.elementMessage_create(
            MessageType.ELEMENT_DELETED, element_id, parent_id, index
        ))

    def ping(self) -> str:
        """Liveness probe; a closed stream answers nothing"""
        if self._stream.closed:
            return ""
        self.message_send(MessageBuilder.pingMessage_create())
        return "pong"

    def log(self, message: str) -> None:
        self.message_send(MessageBuilder.logMessage_create(message))
