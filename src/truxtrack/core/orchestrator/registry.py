"""
Client request registry.

Tracks the active cancellation scope of each client so that a client's new
request supersedes (cancels) its previous one.
"""

from __future__ import annotations

import logging

from truxtrack.core.cancellation import CancelScope
from truxtrack.core.models import InvalidRequestError

logger = logging.getLogger(__name__)


class ClientRequestRegistry:
    """Maps client identity to its single active request scope.

    The registry belongs to one event loop, like the scopes it holds, and
    must only be used from that loop's thread. No method awaits, so a
    replace (remove old, cancel old, install new) completes before any
    other request handler runs. Cancel callbacks fire synchronously inside
    ``register`` and may call back into ``release``.
    """

    def __init__(self) -> None:
        self._scopes: dict[str, CancelScope] = {}

    def __len__(self) -> int:
        return len(self._scopes)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._scopes

    def get(self, client_id: str) -> CancelScope | None:
        return self._scopes.get(client_id)

    def register(self, client_id: str, parent: CancelScope | None = None) -> CancelScope:
        """Supersede the client's previous request and install a fresh scope.

        Args:
            client_id: Logical client identity
            parent: Optional outer scope (e.g. the client's connection)

        Returns:
            A new, uncancelled scope for the client's request

        Raises:
            InvalidRequestError: If the client id is blank
        """
        client = (client_id or "").strip()
        if not client:
            raise InvalidRequestError("Client name cannot be null or empty.")

        scope = CancelScope(parent, name=f"client:{client}")

        # Removed before cancelling so a re-entrant release cannot see it
        previous = self._scopes.pop(client, None)
        if previous is not None:
            logger.info(f"Superseding previous request for client {client}")
            previous.cancel("superseded by a new request")
        self._scopes[client] = scope

        return scope

    def release(self, client_id: str, scope: CancelScope) -> bool:
        """Forget ``scope`` once its request has finished.

        Only removes the entry if it is still the client's current scope, so a
        finishing superseded request never evicts its successor.

        Returns:
            True if the entry was removed
        """
        if self._scopes.get(client_id) is scope:
            del self._scopes[client_id]
            scope.detach()
            return True
        return False

    def unregister_all(self, reason: str = "shutting down") -> int:
        """Cancel and clear every outstanding scope (process shutdown).

        Returns:
            Number of scopes cancelled
        """
        scopes = list(self._scopes.items())
        self._scopes.clear()

        count = 0
        for client, scope in scopes:
            if scope.cancel(reason):
                logger.debug(f"Cancelled request for client {client}")
                count += 1

        if scopes:
            logger.info(f"Cancelled {count} active client request(s)")
        return count
