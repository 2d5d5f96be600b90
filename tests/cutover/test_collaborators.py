"""Tests for warmspine.cutover.collaborators (httpx MockTransport)."""

from __future__ import annotations

import json

import httpx
import pytest

from warmspine.core.errors import ProvisioningFailedError, RoutingFailedError
from warmspine.cutover.collaborators import (
    HttpEnvironmentProvisioner,
    HttpTrafficRouter,
    StaticEnvironmentProvisioner,
    StaticTrafficRouter,
)


def client(handler) -> httpx.Client:
    return httpx.Client(base_url="http://infra.test", transport=httpx.MockTransport(handler))


class TestHttpEnvironmentProvisioner:
    def test_deploy(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path == "/environments"
            return httpx.Response(201, json={"id": "green", "cache_url": "redis://green:6379/0", "zone": "a"})

        env = HttpEnvironmentProvisioner("http://infra.test", client=client(handler)).deploy_environment()
        assert env.id == "green"
        assert env.cache_url == "redis://green:6379/0"
        assert env.metadata["zone"] == "a"

    @pytest.mark.parametrize(
        "response",
        [httpx.Response(500, text="boom"), httpx.Response(200, json={"id": "x"}), httpx.Response(200, text="not json")],
    )
    def test_deploy_failures(self, response):
        provisioner = HttpEnvironmentProvisioner("http://infra.test", client=client(lambda request: response))
        with pytest.raises(ProvisioningFailedError):
            provisioner.deploy_environment()

    def test_teardown(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            return httpx.Response(204)

        HttpEnvironmentProvisioner("http://infra.test", client=client(handler)).teardown_environment("blue")
        assert seen == [("DELETE", "/environments/blue")]

    def test_teardown_failure_carries_environment(self):
        provisioner = HttpEnvironmentProvisioner(
            "http://infra.test", client=client(lambda request: httpx.Response(503))
        )
        with pytest.raises(ProvisioningFailedError) as exc_info:
            provisioner.teardown_environment("blue")
        assert exc_info.value.environment_id == "blue"

    def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProvisioningFailedError):
            HttpEnvironmentProvisioner("http://infra.test", client=client(handler)).deploy_environment()


class TestHttpTrafficRouter:
    def test_current(self):
        router = HttpTrafficRouter(
            "http://infra.test", client=client(lambda request: httpx.Response(200, json={"environment_id": "blue"}))
        )
        assert router.current_environment() == "blue"

    def test_no_active_route(self):
        router = HttpTrafficRouter("http://infra.test", client=client(lambda request: httpx.Response(404)))
        assert router.current_environment() is None

    def test_switch(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PUT"
            bodies.append(json.loads(request.content))
            return httpx.Response(200)

        HttpTrafficRouter("http://infra.test", client=client(handler)).switch_traffic("blue", "green")
        assert bodies == [{"from": "blue", "to": "green"}]

    def test_switch_failure(self):
        router = HttpTrafficRouter("http://infra.test", client=client(lambda request: httpx.Response(502)))
        with pytest.raises(RoutingFailedError) as exc_info:
            router.switch_traffic("blue", "green")
        assert exc_info.value.context.environment_id == "green"


class TestStatic:
    def test_static_provisioner(self):
        provisioner = StaticEnvironmentProvisioner("redis://localhost:6379/0", environment_id="local")
        env = provisioner.deploy_environment()
        assert (env.id, env.cache_url) == ("local", "redis://localhost:6379/0")
        provisioner.teardown_environment("old")
        assert provisioner.torn_down == ["old"]

    def test_static_router(self):
        router = StaticTrafficRouter()
        assert router.current_environment() is None
        router.switch_traffic(None, "local")
        assert router.current_environment() == "local"
        assert router.switches == [(None, "local")]
