from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from types import TracebackType
from typing import Any, Self


class ClientTransport(ABC):
    """Carries calls from one external client and events back to it.

    Inbound messages are call mappings (`asyncRequest`, `syncRequest`,
    `cancel`, `retryRequest`); outbound messages are event mappings
    (`result`, `progress`, `reply`). The transport knows nothing about what
    the calls mean.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True if the transport can still send and receive."""

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        """Send one event to the client.

        Raises:
            ConnectionError: If the transport is closed or the write failed.
        """

    @abstractmethod
    def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Stream of inbound calls. Ends when the client goes away."""

    @abstractmethod
    async def close(self) -> None:
        """Stop message iteration and release the streams."""

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
        return None
