"""Provisioning and traffic-routing collaborators for the Cutover Controller.

Both are black boxes with success/failure outcomes.  The HTTP clients
talk to whatever infrastructure API sits behind ``provisioning_url`` and
``routing_url``; the static implementations serve single-environment
local runs and tests.

HTTP contract::

    POST   {provisioning_url}/environments          → {"id": ..., "cache_url": ...}
    DELETE {provisioning_url}/environments/{id}
    GET    {routing_url}/routes/active              → {"environment_id": ...}
    PUT    {routing_url}/routes/active              ← {"from": ..., "to": ...}
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from warmspine.core.errors import ProvisioningFailedError, RoutingFailedError
from warmspine.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Environment:
    """A cache-backed environment that can receive traffic."""

    id: str
    cache_url: str
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)


class EnvironmentProvisioner(Protocol):
    def deploy_environment(self) -> Environment:
        """Stand up a new environment.  Raises ``ProvisioningFailedError``."""
        ...

    def teardown_environment(self, environment_id: str) -> None:
        """Tear an environment down.  Raises ``ProvisioningFailedError``."""
        ...


class TrafficRouter(Protocol):
    def current_environment(self) -> str | None:
        """Id of the environment currently receiving traffic."""
        ...

    def switch_traffic(self, from_id: str | None, to_id: str) -> None:
        """Redirect traffic.  Raises ``RoutingFailedError``."""
        ...


# ------------------------------------------------------------------ #
# HTTP
# ------------------------------------------------------------------ #


class HttpEnvironmentProvisioner:
    def __init__(self, base_url: str, *, timeout: float = 30.0, client: httpx.Client | None = None):
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def deploy_environment(self) -> Environment:
        try:
            resp = self._client.post("/environments")
            resp.raise_for_status()
            body = resp.json()
            environment = Environment(id=str(body["id"]), cache_url=body["cache_url"], metadata=body)
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise ProvisioningFailedError(f"Environment deploy failed: {exc}", cause=exc) from exc
        logger.info("provisioning.deployed", environment_id=environment.id)
        return environment

    def teardown_environment(self, environment_id: str) -> None:
        try:
            resp = self._client.delete(f"/environments/{environment_id}")
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ProvisioningFailedError(
                f"Teardown of {environment_id} failed: {exc}",
                environment_id=environment_id,
                cause=exc,
            ) from exc
        logger.info("provisioning.torn_down", environment_id=environment_id)

    def close(self) -> None:
        self._client.close()


class HttpTrafficRouter:
    def __init__(self, base_url: str, *, timeout: float = 30.0, client: httpx.Client | None = None):
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def current_environment(self) -> str | None:
        try:
            resp = self._client.get("/routes/active")
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            value = resp.json().get("environment_id")
        except (httpx.HTTPError, ValueError) as exc:
            raise RoutingFailedError(f"Could not read active route: {exc}", cause=exc) from exc
        return str(value) if value is not None else None

    def switch_traffic(self, from_id: str | None, to_id: str) -> None:
        try:
            resp = self._client.put("/routes/active", json={"from": from_id, "to": to_id})
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise RoutingFailedError(
                f"Traffic switch {from_id} -> {to_id} failed: {exc}", cause=exc
            ).with_context(environment_id=to_id) from exc
        logger.info("routing.switched", from_id=from_id, to_id=to_id)

    def close(self) -> None:
        self._client.close()


# ------------------------------------------------------------------ #
# Static (single environment, local runs)
# ------------------------------------------------------------------ #


class StaticEnvironmentProvisioner:
    """Hands out one preconfigured environment; teardown only records the id."""

    def __init__(self, cache_url: str, *, environment_id: str = "local"):
        self._environment = Environment(id=environment_id, cache_url=cache_url)
        self.torn_down: list[str] = []

    def deploy_environment(self) -> Environment:
        return self._environment

    def teardown_environment(self, environment_id: str) -> None:
        self.torn_down.append(environment_id)
        logger.info("provisioning.torn_down", environment_id=environment_id, static=True)


class StaticTrafficRouter:
    """In-process route table."""

    def __init__(self, active: str | None = None):
        self._active = active
        self._lock = threading.Lock()
        self.switches: list[tuple[str | None, str]] = []

    def current_environment(self) -> str | None:
        with self._lock:
            return self._active

    def switch_traffic(self, from_id: str | None, to_id: str) -> None:
        with self._lock:
            self._active = to_id
            self.switches.append((from_id, to_id))


__all__ = [
    "Environment",
    "EnvironmentProvisioner",
    "TrafficRouter",
    "HttpEnvironmentProvisioner",
    "HttpTrafficRouter",
    "StaticEnvironmentProvisioner",
    "StaticTrafficRouter",
]
