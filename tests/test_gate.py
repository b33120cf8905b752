import pytest

from fakes import OWNER, FakeGateway, RecordingChannel, credential

from tasktrack.errors import GatewayError, TransientNetworkError
from tasktrack.gate import ALLOW, DENY, REDIRECT, GateConfig, GateRequest, RequestGate


def signed_in() -> RecordingChannel:
    return RecordingChannel(credential("tok-1").encode())


async def authorize(gate, path, channel=None):
    return await gate.authorize(GateRequest(path, channel or RecordingChannel()))


@pytest.fixture
def gate(gateway):
    return RequestGate(gateway)


class TestAnonymous:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/todos", "/todos/", "/todos/123/edit"])
    async def test_protected_pages_redirect_to_login(self, gate, path):
        decision = await authorize(gate, path)
        assert decision.kind == REDIRECT
        assert decision.location == "/login"
        assert decision.session.identity is None

    @pytest.mark.asyncio
    async def test_protected_api_is_denied(self, gate):
        decision = await authorize(gate, "/api/todos")
        assert decision.kind == DENY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/", "/login", "/register", "/todosx", "/about"])
    async def test_other_pages_allowed(self, gate, path):
        assert (await authorize(gate, path)).kind == ALLOW


class TestAuthenticated:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/login", "/register", "/register/confirm"])
    async def test_public_only_pages_redirect_home(self, gate, path):
        decision = await authorize(gate, path, signed_in())
        assert decision.kind == REDIRECT
        assert decision.location == "/todos"
        assert decision.session.identity == OWNER

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/todos", "/api/todos", "/"])
    async def test_allowed_with_identity(self, gate, path):
        decision = await authorize(gate, path, signed_in())
        assert decision.allowed
        assert decision.session.authenticated

    @pytest.mark.asyncio
    async def test_authorize_is_idempotent(self, gate):
        channel = signed_in()
        first = await authorize(gate, "/todos", channel)
        second = await authorize(gate, "/todos", channel)
        assert first == second
        assert channel.writes == []

    @pytest.mark.asyncio
    async def test_valid_session_is_left_alone(self, gate):
        channel = signed_in()
        await authorize(gate, "/todos", channel)
        assert channel.writes == []


class TestCredentialWriteBack:
    @pytest.mark.asyncio
    async def test_refreshed_credential_is_written(self, gateway, gate):
        fresh = credential("tok-2", refresh="r-2")
        gateway.refresh_tokens["r-1"] = (fresh, OWNER)
        channel = RecordingChannel(credential("expired", refresh="r-1").encode())

        decision = await authorize(gate, "/todos", channel)
        assert decision.allowed
        assert decision.session.identity == OWNER
        assert channel.writes == [fresh.encode()]

    @pytest.mark.asyncio
    async def test_dead_credential_is_cleared(self, gate):
        channel = RecordingChannel(credential("expired", refresh="revoked").encode())
        decision = await authorize(gate, "/todos", channel)
        assert decision.kind == REDIRECT
        assert channel.writes == [None]
        assert channel.read() is None

    @pytest.mark.asyncio
    async def test_garbage_credential_is_cleared(self, gate):
        channel = RecordingChannel("%%%not-a-credential")
        decision = await authorize(gate, "/todos", channel)
        assert decision.kind == REDIRECT
        assert channel.writes == [None]


class TestFailClosed:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [TransientNetworkError("timeout"), GatewayError("HTTP 502"), RuntimeError("bug")])
    async def test_gateway_failure_means_anonymous(self, gateway, gate, error):
        gateway.validate_error = error
        channel = signed_in()

        decision = await authorize(gate, "/todos", channel)
        assert decision.kind == REDIRECT
        assert decision.location == "/login"
        assert decision.session.identity is None
        assert channel.writes == []

    @pytest.mark.asyncio
    async def test_gateway_failure_on_api_denies(self, gateway, gate):
        gateway.validate_error = TransientNetworkError("timeout")
        assert (await authorize(gate, "/api/todos", signed_in())).kind == DENY


class TestConfig:
    @pytest.mark.parametrize("path", ["/static/app.js", "/_next/static/x.js", "/favicon.ico", "/logo.SVG", "/health"])
    def test_exempt_paths(self, path):
        assert GateConfig().is_exempt(path)

    @pytest.mark.parametrize("path", ["/todos", "/login", "/api/todos", "/healthz"])
    def test_gated_paths(self, path):
        assert not GateConfig().is_exempt(path)

    @pytest.mark.asyncio
    async def test_custom_routes(self):
        config = GateConfig(login_path="/signin", home_path="/app", protected=["/app"], public_only=["/signin"])
        gate = RequestGate(FakeGateway(), config)

        decision = await authorize(gate, "/app/settings")
        assert decision.location == "/signin"
        decision = await authorize(gate, "/signin", signed_in())
        assert decision.location == "/app"
