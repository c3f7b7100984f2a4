"""
Credential broker — correlated secret exchange with the UI.

Flow for one request::

    token = uuid4().hex
    pending[token] = future          # register BEFORE publishing
    publish credential-request {token}
    await future (bounded by timeout)
    pending.pop(token)               # on success, timeout and cancel

The UI answers with ``deliver(token, secret)``.  A response for an
unknown, expired or already-answered token is ignored.  Each token has
its own future, so concurrent requests never share a waiter.

All methods except ``deliver_threadsafe`` must be called from the
event loop that owns the broker.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable

from src.core.observability.logging_config import mask_secret
from src.core.services.installer.errors import CredentialCancelled, CredentialTimeout
from src.core.services.installer.progress import ProgressEmitter

logger = logging.getLogger(__name__)

CREDENTIAL_TIMEOUT_S = 120.0


def _new_token() -> str:
    return uuid.uuid4().hex


class CredentialBroker:
    """Mints tokens and resolves one waiter per token."""

    def __init__(
        self,
        emitter: ProgressEmitter,
        *,
        timeout: float = CREDENTIAL_TIMEOUT_S,
        token_factory: Callable[[], str] = _new_token,
    ) -> None:
        self._emitter = emitter
        self._timeout = timeout
        self._token_factory = token_factory
        self._pending: dict[str, asyncio.Future[str]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def pending_tokens(self) -> list[str]:
        """Tokens that are still waiting for a response."""
        return list(self._pending)

    @property
    def timeout(self) -> float:
        return self._timeout

    async def request_secret(self, timeout: float | None = None) -> str:
        """Ask the UI for a secret and wait for the matching response.

        Raises:
            CredentialTimeout: No response within ``timeout`` seconds.
            CredentialCancelled: ``cancel(token)`` was called.
        """
        limit = self._timeout if timeout is None else timeout
        self._loop = asyncio.get_running_loop()
        token = self._token_factory()
        if token in self._pending:
            raise RuntimeError(f"Duplicate credential token: {token}")

        waiter: asyncio.Future[str] = self._loop.create_future()
        self._pending[token] = waiter
        try:
            logger.info("Requesting credential (token=%s, timeout=%gs)", token, limit)
            self._emitter.credential_request(token)
            try:
                secret = await asyncio.wait_for(waiter, timeout=limit)
            except TimeoutError:
                logger.warning("Credential request %s timed out", token)
                raise CredentialTimeout(limit) from None
        finally:
            self._pending.pop(token, None)

        mask_secret(secret)
        logger.info("Credential received (token=%s)", token)
        return secret

    def deliver(self, token: str, secret: str | None) -> bool:
        """Resolve the waiter for ``token``.

        Returns True if a pending request was resolved, False if the
        token is unknown, expired or already answered.  An absent
        secret resolves to the empty string.
        """
        waiter = self._pending.pop(token, None)
        if waiter is None or waiter.done():
            logger.debug("Ignoring credential response for unknown token %s", token)
            return False
        waiter.set_result(secret or "")
        return True

    def cancel(self, token: str) -> bool:
        """Withdraw a pending request; its waiter raises ``CredentialCancelled``."""
        waiter = self._pending.pop(token, None)
        if waiter is None or waiter.done():
            return False
        waiter.set_exception(CredentialCancelled())
        return True

    def deliver_threadsafe(self, token: str, secret: str | None) -> None:
        """Schedule ``deliver`` on the broker's loop from another thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("No active credential loop; dropping response for %s", token)
            return
        loop.call_soon_threadsafe(self.deliver, token, secret)
