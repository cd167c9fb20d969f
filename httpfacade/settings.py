"""Environment-driven configuration for the named HTTP clients."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from dotenv import load_dotenv

CLIENT_ENV_PREFIX = "HTTP_CLIENT_"


@dataclass(frozen=True, slots=True)
class ClientSettings:
    """Base configuration applied to one named client."""

    base_url: str = ""
    timeout: float | None = None


@dataclass(frozen=True, slots=True)
class Settings:
    """Global client defaults plus the per-name base URLs and timeouts."""

    timeout: float = 30.0
    verify_ssl: bool = True
    default_client: str = "default"
    clients: Mapping[str, ClientSettings] = field(default_factory=dict)

    def for_client(self, name: str) -> ClientSettings:
        """Return the settings for ``name``, falling back to an unconfigured client."""
        return self.clients.get(name, ClientSettings())

    @classmethod
    def load(cls) -> "Settings":
        """
        Read HTTP_FACADE_* and HTTP_CLIENT_<NAME>_* variables.

        A .env file, when present, is merged in first; values already set in the
        process environment win.
        """
        load_dotenv()

        timeout = _positive_float(os.getenv("HTTP_FACADE_TIMEOUT", "").strip() or "30", "HTTP_FACADE_TIMEOUT")

        verify_raw = os.getenv("HTTP_FACADE_VERIFY_SSL", "").strip().lower() or "true"
        if verify_raw not in {"1", "true", "yes", "on", "0", "false", "no", "off"}:
            raise ValueError("HTTP_FACADE_VERIFY_SSL must be a boolean value.")
        verify_ssl = verify_raw in {"1", "true", "yes", "on"}

        default_client = os.getenv("HTTP_FACADE_DEFAULT_CLIENT", "").strip() or "default"

        return cls(
            timeout=timeout,
            verify_ssl=verify_ssl,
            default_client=default_client,
            clients=_load_clients(os.environ),
        )


def _positive_float(raw: str, name: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a numeric value.") from exc
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero.")
    return value


def _load_clients(environ: Mapping[str, str]) -> dict[str, ClientSettings]:
    """Collect HTTP_CLIENT_<NAME>_BASE_URL / _TIMEOUT pairs into named client settings."""
    base_urls: dict[str, str] = {}
    timeouts: dict[str, float] = {}
    for key, value in environ.items():
        if not key.startswith(CLIENT_ENV_PREFIX):
            continue
        remainder = key[len(CLIENT_ENV_PREFIX):]
        if remainder.endswith("_BASE_URL"):
            name = remainder[: -len("_BASE_URL")].lower()
            if name and value.strip():
                base_urls[name] = value.strip()
        elif remainder.endswith("_TIMEOUT"):
            name = remainder[: -len("_TIMEOUT")].lower()
            if name and value.strip():
                timeouts[name] = _positive_float(value.strip(), key)

    return {
        name: ClientSettings(base_url=base_urls.get(name, ""), timeout=timeouts.get(name))
        for name in sorted(base_urls.keys() | timeouts.keys())
    }
