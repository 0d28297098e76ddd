import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

ResultCallback = Callable[[int, int, dict[str, Any]], Awaitable[None]]
"""Receives (server_id, opcode, result) when a request completes."""

ProgressCallback = Callable[[int, int, dict[str, Any]], Awaitable[None]]
"""Receives (server_id, opcode, progress) while a transfer runs."""


class CallbackManager:
    """Holds the client's result and progress sinks.

    Each sink is a single slot: registering replaces whatever was there, and
    unregistering empties the slot no matter who registered it. Sink
    failures are logged and never reach the dispatcher.
    """

    def __init__(self):
        self.result_handler: ResultCallback | None = None
        self.progress_handler: ProgressCallback | None = None

    def register_result(self, callback: ResultCallback) -> bool:
        self.result_handler = callback
        return True

    def unregister_result(self, callback: ResultCallback | None = None) -> bool:
        self.result_handler = None
        return True

    def register_progress(self, callback: ProgressCallback) -> bool:
        self.progress_handler = callback
        return True

    def unregister_progress(self, callback: ProgressCallback | None = None) -> bool:
        self.progress_handler = None
        return True

    async def call_result(
        self, server_id: int, opcode: int, result: dict[str, Any]
    ) -> None:
        """Deliver a terminal result to the registered sink, if any."""
        if self.result_handler:
            try:
                await self.result_handler(server_id, opcode, result)
            except Exception as e:
                logger.error(f"Result callback failed for {server_id}: {e}")

    async def call_progress(
        self, server_id: int, opcode: int, progress: dict[str, Any]
    ) -> None:
        """Forward a progress update. Looks up the slot at call time."""
        if self.progress_handler:
            try:
                await self.progress_handler(server_id, opcode, progress)
            except Exception as e:
                logger.error(f"Progress callback failed for {server_id}: {e}")
