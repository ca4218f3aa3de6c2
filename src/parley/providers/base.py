"""Driver protocol: the capability set every protocol family implements."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from parley.adapters.config import ProtocolFamily

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from parley.types import ChatRequest, StreamEvent

__all__ = ["Driver", "ProtocolFamily"]


@runtime_checkable
class Driver(Protocol):
    """Owns the network call for one protocol family.

    ``stream`` yields normalized events in wire order and ends after the
    provider signals completion. Request-level failures are raised as
    ``APIError``; cancellation is raised as ``RequestAborted``.
    """

    @property
    def family(self) -> ProtocolFamily:
        """The protocol family this driver speaks."""
        ...

    def stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Send *request* and yield its events."""
        ...

    async def aclose(self) -> None:
        """Release pooled connections."""
        ...
