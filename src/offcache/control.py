"""Control channel -- message-in / message-out management protocol.

External callers send ``{type, payload}`` messages (``data`` is accepted
as an alias for ``payload``) with an optional list of reply ``ports``.

==================  ===============================================  =========================
Type                Effect                                           Reply
==================  ===============================================  =========================
``SKIP_WAITING``    :meth:`~offcache.lifecycle.LifecycleManager.skip_waiting`  none
``GET_CACHE_SIZE``  sum body bytes across every namespace            ``{type: CACHE_SIZE, size}``
``CLEAR_CACHE``     delete every namespace                           ``{type: CACHE_CLEARED}``
anything else       logged                                           none
==================  ===============================================  =========================

Replies are posted to the message's first port and also returned to the
caller. Malformed messages are treated like unknown types: logged, no
reply, no error.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Union

from pydantic import ValidationError

from offcache.exceptions import StoreError
from offcache.lifecycle import LifecycleManager
from offcache.models import ControlMessage, MessageType
from offcache.output import debug, error, info, warning
from offcache.store import CacheStore


class ControlChannel:
    """Dispatches control messages to the store and the lifecycle manager.

    Args:
        store: The namespaced response store.
        lifecycle: The lifecycle manager that ``SKIP_WAITING`` drives.
    """

    def __init__(self, store: CacheStore, lifecycle: LifecycleManager) -> None:
        self._store = store
        self._lifecycle = lifecycle

    async def handle(
        self, message: Union[ControlMessage, dict[str, Any]]
    ) -> Optional[dict[str, Any]]:
        """Handle one control message and return its reply, if any.

        Raises:
            StoreError: When ``GET_CACHE_SIZE`` cannot read the store, or
                when ``CLEAR_CACHE`` could not delete every namespace.
        """
        if not isinstance(message, ControlMessage):
            try:
                message = ControlMessage.model_validate(message)
            except ValidationError:
                warning(f"Unknown control message: {message!r}")
                return None

        if message.type == MessageType.SKIP_WAITING.value:
            info("Skip waiting requested")
            await self._lifecycle.skip_waiting()
            return None

        if message.type == MessageType.GET_CACHE_SIZE.value:
            size = await self._store.total_size()
            debug(f"Cache size: {size} bytes")
            return self._reply(message, {"type": MessageType.CACHE_SIZE.value, "size": size})

        if message.type == MessageType.CLEAR_CACHE.value:
            await self.clear_all()
            return self._reply(message, {"type": MessageType.CACHE_CLEARED.value})

        warning(f"Unknown control message: {message.type}")
        return None

    async def clear_all(self) -> list[str]:
        """Delete every enumerable namespace, current or stale.

        Every deletion is attempted even when some fail.

        Returns:
            The names that were deleted.

        Raises:
            StoreError: If any deletion failed.
        """
        names = await self._store.keys()
        results = await asyncio.gather(
            *(self._store.delete(name) for name in names), return_exceptions=True
        )
        failures = []
        for name, result in zip(names, results):
            if isinstance(result, StoreError):
                failures.append(f"{name}: {result}")
            elif isinstance(result, BaseException):
                raise result
        if failures:
            error(f"Could not clear every namespace: {'; '.join(failures)}")
            raise StoreError(f"Failed to delete {len(failures)} namespace(s)")
        info(f"Cleared {len(names)} namespace(s)")
        return names

    @staticmethod
    def _reply(message: ControlMessage, reply: dict[str, Any]) -> dict[str, Any]:
        if message.ports:
            message.ports[0].post_message(reply)
        return reply
