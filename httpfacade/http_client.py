"""Named AsyncClient factory backing the facade's client resolution."""

import logging
from typing import Protocol

import httpx

from httpfacade.settings import Settings

logger = logging.getLogger(__name__)


class ClientFactory(Protocol):
    """Anything able to hand out a ready-to-use AsyncClient for a logical name."""

    def get_client(self, name: str) -> httpx.AsyncClient: ...


def create_named_client(name: str, settings: Settings) -> httpx.AsyncClient:
    """
    Build an AsyncClient configured for the named downstream service.

    Unknown names receive a client without a base URL so absolute URLs keep working.
    """
    client_settings = settings.for_client(name)
    timeout = client_settings.timeout if client_settings.timeout is not None else settings.timeout
    return httpx.AsyncClient(
        base_url=client_settings.base_url,
        timeout=timeout,
        verify=settings.verify_ssl,
    )


class NamedClientFactory:
    """Lazily creates one pooled AsyncClient per name and reuses it across calls."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._clients: dict[str, httpx.AsyncClient] = {}
        self._registered: set[str] = set()

    @property
    def settings(self) -> Settings:
        return self._settings

    def register(self, name: str, client: httpx.AsyncClient) -> None:
        """Install a pre-built client under ``name`` (custom transports, test doubles)."""
        previous = self._clients.get(name)
        if previous is not None and previous is not client and not previous.is_closed:
            raise ValueError(f"A client named {name!r} is already registered.")
        self._clients[name] = client
        self._registered.add(name)

    def get_client(self, name: str) -> httpx.AsyncClient:
        client = self._clients.get(name)
        if client is not None and client.is_closed and name in self._registered:
            raise RuntimeError(f"The registered client {name!r} has been closed; register a new one.")
        if client is None or client.is_closed:
            logger.debug("Creating HTTP client", extra={"client": name})
            client = create_named_client(name, self._settings)
            self._clients[name] = client
        return client

    async def aclose(self) -> None:
        """Close every pooled client."""
        clients = list(self._clients.values())
        self._clients.clear()
        self._registered.clear()
        for client in clients:
            await client.aclose()
