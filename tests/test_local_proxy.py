"""Tests for the trusted local proxy."""

import asyncio

import pytest

from sandterm.errors import PolicyRejectedError
from sandterm.local_proxy import NO_OUTPUT, LocalProxy, check_command, host_is_loopback


@pytest.fixture
async def proxy_client(aiohttp_client):
    return await aiohttp_client(LocalProxy().create_app())


@pytest.fixture
def spawn_calls(monkeypatch):
    """Record attempts to spawn a process, refusing to actually spawn."""
    calls = []

    async def fake_spawn(command, **kwargs):
        calls.append(command)
        raise AssertionError("process must not be spawned")

    monkeypatch.setattr(asyncio, "create_subprocess_shell", fake_spawn)
    return calls


class TestLoopbackCheck:
    @pytest.mark.parametrize(
        "host",
        ["localhost", "localhost:3030", "127.0.0.1", "127.0.0.1:3030", "[::1]:3030", "LOCALHOST"],
    )
    def test_loopback_hosts(self, host):
        assert host_is_loopback(host)

    @pytest.mark.parametrize(
        "host",
        ["", "example.com", "192.168.1.20:3030", "localhost.evil.com", "127.0.0.1.nip.io"],
    )
    def test_other_hosts(self, host):
        assert not host_is_loopback(host)

    async def test_non_loopback_request_rejected(self, proxy_client, spawn_calls):
        response = await proxy_client.post(
            "/exec", json={"command": "echo hi"}, headers={"Host": "example.com"}
        )

        assert response.status == 403
        assert "only localhost" in (await response.json())["error"]
        assert spawn_calls == []

    async def test_status_also_requires_loopback(self, proxy_client):
        response = await proxy_client.get("/status", headers={"Host": "devbox.lan:3030"})
        assert response.status == 403


class TestBlocklist:
    @pytest.mark.parametrize("command", ["sudo rm -rf /", "rm -rf ~", "rm -fr build", "sudo ls"])
    def test_blocked(self, command):
        with pytest.raises(PolicyRejectedError):
            check_command(command)

    @pytest.mark.parametrize("command", ["ls -la", "rm file.txt", "echo hi"])
    def test_allowed(self, command):
        check_command(command)

    async def test_sudo_rm_rf_rejected_without_spawning(self, proxy_client, spawn_calls):
        """A loopback caller still cannot run a blocklisted command."""
        response = await proxy_client.post("/exec", json={"command": "sudo rm -rf /"})

        assert response.status == 403
        assert (await response.json())["error"].startswith("Rejected by policy")
        assert spawn_calls == []


class TestExec:
    async def test_status(self, proxy_client):
        response = await proxy_client.get("/status")

        assert response.status == 200
        assert await response.json() == {"status": "Local proxy running"}

    async def test_echo(self, proxy_client):
        response = await proxy_client.post("/exec", json={"command": "echo hi"})

        assert response.status == 200
        assert await response.json() == {"output": "hi\n", "error": None}

    async def test_stderr_used_when_no_stdout(self, proxy_client):
        response = await proxy_client.post("/exec", json={"command": "echo oops 1>&2"})

        assert (await response.json())["output"] == "oops\n"

    async def test_no_output(self, proxy_client):
        response = await proxy_client.post("/exec", json={"command": "true"})

        assert await response.json() == {"output": NO_OUTPUT, "error": None}

    async def test_nonzero_exit_sets_error(self, proxy_client):
        response = await proxy_client.post("/exec", json={"command": "exit 3"})

        data = await response.json()
        assert response.status == 200
        assert "exit code 3" in data["error"]

    async def test_missing_command(self, proxy_client, spawn_calls):
        response = await proxy_client.post("/exec", json={})

        assert response.status == 400
        assert spawn_calls == []

    async def test_invalid_json(self, proxy_client):
        response = await proxy_client.post(
            "/exec", data="not json", headers={"Content-Type": "application/json"}
        )
        assert response.status == 400

    async def test_non_utf8_body(self, proxy_client, spawn_calls):
        """Undecodable bytes are invalid JSON, not a server error."""
        response = await proxy_client.post(
            "/exec", data=b"\xff\xfe{}", headers={"Content-Type": "application/json"}
        )

        assert response.status == 400
        assert await response.json() == {"error": "Invalid JSON"}
        assert spawn_calls == []

    async def test_cors_preflight(self, proxy_client):
        response = await proxy_client.options("/exec")

        assert response.status == 204
        assert response.headers["Access-Control-Allow-Origin"] == "*"


class TestRun:
    async def test_output_cap(self):
        """Output beyond the buffer cap kills the command and is reported."""
        proxy = LocalProxy(max_buffer=10)

        result = await proxy.run("printf '%s' 0123456789abcdef")

        assert result.error == "stdout maxBuffer length exceeded"
        assert result.output == "0123456789"

    async def test_timeout(self):
        proxy = LocalProxy(timeout=0.2)

        result = await proxy.run("sleep 5")

        assert result.error == "Command timed out after 0.2 seconds"

    async def test_spawn_failure(self, monkeypatch):
        async def failing_spawn(command, **kwargs):
            raise OSError("spawn failed")

        monkeypatch.setattr(asyncio, "create_subprocess_shell", failing_spawn)

        result = await LocalProxy().run("echo hi")

        assert result.output == ""
        assert result.error == "spawn failed"
