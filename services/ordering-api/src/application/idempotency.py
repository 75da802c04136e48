"""
De-duplication of retried commands.

Clients attach a request id to every command. The first time an id is seen it
is recorded before the wrapped handler runs and the handler's result is stored
once it finishes; later deliveries of the same id return that stored result
without running the handler again, so domain effects and metrics are applied
exactly once.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Generic, Protocol, TypeVar

import anyio

from application.commands import IdentifiedCommand
from persistence.repository import DuplicateRequestError, RequestManager

logger = logging.getLogger(__name__)

CommandT = TypeVar("CommandT")
CommandT_contra = TypeVar("CommandT_contra", contravariant=True)


class CommandHandler(Protocol[CommandT_contra]):
    def handle(self, command: CommandT_contra) -> Awaitable[bool]: ...


class IdentifiedCommandHandler(Generic[CommandT]):
    def __init__(self, inner: CommandHandler[CommandT], request_manager: RequestManager) -> None:
        self._inner = inner
        self._request_manager = request_manager

    async def handle(self, identified: IdentifiedCommand[CommandT]) -> bool:
        command_name = type(identified.command).__name__

        existing = await self._request_manager.find(identified.request_id)
        if existing is not None:
            return self._duplicate_result(identified, command_name, existing.succeeded)

        try:
            await self._request_manager.create_request_for_command(identified.request_id, command_name)
        except DuplicateRequestError:
            # Lost a race with a concurrent delivery of the same request id.
            return self._duplicate_result(identified, command_name, None)

        logger.info(
            {
                "event": "command_dispatched",
                "command": command_name,
                "request_id": identified.request_id,
            }
        )
        try:
            result = await self._inner.handle(identified.command)
        except BaseException:
            # Covers cancellation too: an interrupted attempt must never read back as accepted.
            with anyio.CancelScope(shield=True):
                await self._request_manager.complete(identified.request_id, False)
            raise
        await self._request_manager.complete(identified.request_id, result)
        return result

    def _duplicate_result(self, identified: IdentifiedCommand[Any], command_name: str, cached: bool | None) -> bool:
        logger.info(
            {
                "event": "duplicate_command_ignored",
                "command": command_name,
                "request_id": identified.request_id,
            }
        )
        # A first attempt that has not finished yet is reported as accepted.
        return True if cached is None else cached
