"""Tests for eureka-client."""

import ipaddress
import threading

import pytest
from unittest.mock import patch, MagicMock

from eureka_client import (
    init,
    shutdown,
    get_client,
    run_heartbeat_loop,
    CallContext,
    ConfigurationError,
    EurekaClient,
    EurekaSettings,
    HeartbeatFailed,
    Instance,
    InstanceNotFound,
    InstanceStatus,
    InvalidArgument,
    LeaseInfo,
    OperationCancelled,
    Port,
    ProtocolError,
    RegisteredInstance,
    RegistrationFailed,
    TransportError,
)

URLS = ["http://eureka-1:8761/eureka", "http://eureka-2:8761/eureka"]


@pytest.fixture
def client(transport):
    """Facade client for my-app on 10.5.0.50:8080."""
    with EurekaClient(URLS, "my-app", "10.5.0.50", 8080, transport=transport) as c:
        yield c


class TestEurekaClient:
    """Tests for the EurekaClient facade."""

    def test_instance_id(self, client):
        """Test the host:appID:port instance ID."""
        assert client.instance_id == "10.5.0.50:my-app:8080"
        assert client.app_id == "my-app"
        assert client.host == "10.5.0.50"
        assert client.port == 8080

    def test_no_urls_raises(self):
        """Test that construction without URLs fails."""
        with pytest.raises(ConfigurationError):
            EurekaClient([], "my-app", "10.5.0.50", 8080)

    def test_timeout_is_keyword_only(self):
        """Test that options after the port must be named."""
        with pytest.raises(TypeError):
            EurekaClient(URLS, "my-app", "10.5.0.50", 8080, 5.0)

    def test_register_instance(self, client, registry):
        """Test the registration payload."""
        registry.respond(204)

        result = client.register_instance("10.5.0.50", ttl=3, use_ssl=False)

        assert result == RegisteredInstance(id="10.5.0.50:my-app:8080")
        sent = Instance.from_xml(registry.last.content)
        assert registry.last.url.path == "/eureka/v2/apps/my-app"
        assert sent.instance_id == "10.5.0.50:my-app:8080"
        assert sent.host_name == "10.5.0.50"
        assert sent.app == "my-app"
        assert sent.ip_addr == "10.5.0.50"
        assert sent.status == "UP"
        assert sent.vip_address == "my-app"
        assert sent.secure_vip_address == "my-app"
        assert sent.port == Port(value=8080, enabled=True)
        assert sent.secure_port == Port(value=8080, enabled=False)
        assert sent.lease_info == LeaseInfo(eviction_duration_in_secs=3)
        assert sent.data_center_info.name == "MyOwn"

    def test_register_with_ssl(self, client, registry):
        """Test that use_ssl flips which port is enabled."""
        registry.respond(204)

        client.register_instance(ipaddress.ip_address("10.5.0.50"), ttl=30, use_ssl=True)

        sent = Instance.from_xml(registry.last.content)
        assert sent.port.enabled is False
        assert sent.secure_port.enabled is True

    def test_register_ipv4_mapped_address(self, client):
        """Test that IPv4-mapped IPv6 addresses are accepted."""
        assert client.build_instance("::ffff:10.5.0.50", ttl=3).ip_addr == "10.5.0.50"

    @pytest.mark.parametrize("ip", ["::1", "not-an-ip"])
    def test_register_rejects_non_ipv4(self, client, registry, ip):
        """Test that non-IPv4 addresses are rejected before any request."""
        with pytest.raises(InvalidArgument):
            client.register_instance(ip, ttl=3)
        assert registry.requests == []

    def test_register_rejects_negative_ttl(self, client):
        """Test that a negative TTL is rejected."""
        with pytest.raises(InvalidArgument, match="ttl"):
            client.register_instance("10.5.0.50", ttl=-1)

    def test_register_failure(self, client, registry):
        """Test that registry errors become RegistrationFailed."""
        registry.respond(500)

        with pytest.raises(RegistrationFailed) as exc_info:
            client.register_instance("10.5.0.50", ttl=3)

        assert isinstance(exc_info.value.__cause__, ProtocolError)
        assert "10.5.0.50:my-app:8080" in str(exc_info.value)

    def test_register_fails_over(self, client, registry):
        """Test registration against the second server."""
        registry.down_hosts.add("eureka-1")
        registry.respond(204)

        client.register_instance("10.5.0.50", ttl=3)

        assert registry.hosts == ["eureka-1", "eureka-2"]

    def test_heartbeat(self, client, registry):
        """Test a successful heartbeat."""
        registry.respond(200)
        client.heartbeat()
        assert registry.last.method == "PUT"

    def test_heartbeat_not_found(self, client, registry):
        """Test that 404 raises InstanceNotFound."""
        registry.respond(404)

        with pytest.raises(InstanceNotFound) as exc_info:
            client.heartbeat()

        assert exc_info.value.instance_id == "10.5.0.50:my-app:8080"

    def test_heartbeat_failure(self, client, registry):
        """Test that other statuses raise HeartbeatFailed."""
        registry.respond(500)

        with pytest.raises(HeartbeatFailed) as exc_info:
            client.heartbeat()

        assert isinstance(exc_info.value.__cause__, ProtocolError)

    def test_heartbeat_all_servers_down(self, client, registry):
        """Test that transport failures raise HeartbeatFailed."""
        registry.down_hosts.update({"eureka-1", "eureka-2"})

        with pytest.raises(HeartbeatFailed) as exc_info:
            client.heartbeat()

        assert isinstance(exc_info.value.__cause__, TransportError)
        assert exc_info.value.__cause__.url == "http://eureka-2:8761/eureka/v2"

    def test_unregister(self, client, registry):
        """Test DELETE of the bound instance."""
        registry.respond(204)
        client.unregister_instance(CallContext(timeout=5.0))
        assert registry.last.method == "DELETE"
        assert registry.last.url.path == "/eureka/v2/apps/my-app/10.5.0.50:my-app:8080"

    def test_errors_keep_their_kind(self, client, registry):
        """Test that the facade adds context without changing the class."""
        registry.respond(500)

        with pytest.raises(ProtocolError) as exc_info:
            client.get_application()

        assert str(exc_info.value).startswith("failed to get application my-app: ")
        assert exc_info.value.status_code == 500

    def test_transport_errors_keep_their_kind(self, client, registry):
        """Test that all-servers-down stays a TransportError."""
        registry.down_hosts.update({"eureka-1", "eureka-2"})

        with pytest.raises(TransportError, match="failed to get applications by VIP payments"):
            client.get_by_vip("payments")

    def test_cancellation_keeps_its_kind(self, client, registry):
        """Test that a cancelled call is not reported as a transport error."""
        ctx = CallContext()
        ctx.cancel()

        with pytest.raises(OperationCancelled):
            client.get_all_applications(ctx)
        assert registry.requests == []

    def test_get_instance(self, client, registry):
        """Test fetching the bound instance."""
        registry.respond(200, b"<instance><instanceId>10.5.0.50:my-app:8080</instanceId><status>UP</status></instance>")

        inst = client.get_instance()

        assert inst.instance_id == "10.5.0.50:my-app:8080"
        assert registry.last.url.path == "/eureka/v2/apps/my-app/10.5.0.50:my-app:8080"

    def test_get_by_secure_vip(self, client, registry):
        """Test the secure VIP query."""
        registry.respond(200, b"<applications/>")
        assert client.get_by_secure_vip("my-app").applications == []
        assert registry.last.url.path == "/eureka/v2/svips/my-app"

    def test_set_and_clear_status(self, client, registry):
        """Test status override round trip."""
        registry.respond(204)

        client.set_status(InstanceStatus.OUT_OF_SERVICE)
        assert registry.last.url.params["value"] == "OUT_OF_SERVICE"

        client.clear_status_override("UP")
        assert registry.last.method == "DELETE"
        assert registry.last.url.params["value"] == "UP"

    def test_set_status_failure_context(self, client, registry):
        """Test status error context."""
        registry.respond(500)
        with pytest.raises(ProtocolError, match="failed to set status DOWN for instance 10.5.0.50:my-app:8080"):
            client.set_status("DOWN")

    def test_update_metadata_empty(self, client, registry):
        """Test that empty metadata raises InvalidArgument without a request."""
        with pytest.raises(InvalidArgument):
            client.update_metadata({})
        assert registry.requests == []

    def test_wrap_transport(self, client, registry):
        """Test that the wrapper reaches the transport client."""
        wrapper = MagicMock(side_effect=lambda inner: inner)
        client.wrap_transport(wrapper)
        wrapper.assert_called_once()

        registry.respond(200)
        client.heartbeat()


class TestEurekaSettings:
    """Tests for environment configuration."""

    def test_from_env(self):
        """Test reading all variables."""
        env = {
            "EUREKA_SERVICE_URLS": "http://eureka-1:8761/eureka, http://eureka-2:8761/eureka",
            "EUREKA_APP_ID": "my-app",
            "EUREKA_INSTANCE_HOST": "10.5.0.50",
            "EUREKA_INSTANCE_PORT": "9090",
        }
        with patch.dict("os.environ", env, clear=True):
            settings = EurekaSettings.from_env()

        assert settings.service_urls == URLS
        assert settings.app_id == "my-app"
        assert settings.host == "10.5.0.50"
        assert settings.port == 9090

    def test_default_zone_fallback(self):
        """Test the Spring-style default zone variable."""
        env = {
            "EUREKA_CLIENT_SERVICE_URL_DEFAULTZONE": "http://eureka:8761/eureka",
            "EUREKA_APP_ID": "my-app",
            "EUREKA_INSTANCE_HOST": "10.5.0.50",
        }
        with patch.dict("os.environ", env, clear=True):
            settings = EurekaSettings.from_env()

        assert settings.service_urls == ["http://eureka:8761/eureka"]
        assert settings.port == 8080

    def test_missing_urls_raises(self):
        """Test that missing URLs name the variable."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConfigurationError, match="EUREKA_SERVICE_URLS"):
                EurekaSettings.from_env()

    def test_bad_port_raises(self):
        """Test that a non-numeric port is rejected."""
        env = {
            "EUREKA_SERVICE_URLS": "http://eureka:8761",
            "EUREKA_APP_ID": "my-app",
            "EUREKA_INSTANCE_HOST": "10.5.0.50",
            "EUREKA_INSTANCE_PORT": "http",
        }
        with patch.dict("os.environ", env, clear=True):
            with pytest.raises(ConfigurationError, match="EUREKA_INSTANCE_PORT"):
                EurekaSettings.from_env()

    def test_explicit_values_fill_gaps(self):
        """Test that each value falls back to its own variable."""
        with patch.dict("os.environ", {"EUREKA_INSTANCE_PORT": "9090"}, clear=True):
            settings = EurekaSettings.from_env(service_urls=URLS, app_id="my-app", host="10.5.0.50")

        assert settings.service_urls == URLS
        assert settings.app_id == "my-app"
        assert settings.host == "10.5.0.50"
        assert settings.port == 9090

    def test_missing_names_only_unset_variables(self):
        """Test that the error lists exactly the variables still needed."""
        with patch.dict("os.environ", {"EUREKA_APP_ID": "my-app"}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                EurekaSettings.from_env(host="10.5.0.50")

        message = str(exc_info.value)
        assert "EUREKA_SERVICE_URLS" in message
        assert "EUREKA_APP_ID" not in message
        assert "EUREKA_INSTANCE_HOST" not in message

    def test_falsy_explicit_values_are_kept(self):
        """Test that port 0 and an empty URL list are not replaced from the environment."""
        env = {
            "EUREKA_SERVICE_URLS": "http://eureka:8761",
            "EUREKA_INSTANCE_PORT": "9090",
        }
        with patch.dict("os.environ", env, clear=True):
            settings = EurekaSettings.from_env(service_urls=[], app_id="my-app", host="10.5.0.50", port=0)

        assert settings.service_urls == []
        assert settings.port == 0


class TestHeartbeatLoop:
    """Tests for run_heartbeat_loop."""

    def test_sends_immediately_and_stops(self):
        """Test that one heartbeat goes out before the stop check."""
        client = MagicMock()
        stop = threading.Event()
        stop.set()

        run_heartbeat_loop(client, interval=10, stop_event=stop)

        client.heartbeat.assert_called_once()
        ctx = client.heartbeat.call_args[0][0]
        assert isinstance(ctx, CallContext)
        assert ctx.cancelled

    def test_failures_are_logged_not_raised(self):
        """Test that heartbeat errors don't stop the loop."""
        client = MagicMock()
        stop = threading.Event()
        calls = []

        def heartbeat(ctx):
            calls.append(ctx)
            if len(calls) == 1:
                raise InstanceNotFound("gone")
            if len(calls) == 2:
                raise HeartbeatFailed("down")
            stop.set()

        client.heartbeat.side_effect = heartbeat

        run_heartbeat_loop(client, interval=0.01, stop_event=stop)

        assert len(calls) == 3


@pytest.fixture
def mock_eureka_client():
    """Patch EurekaClient used by the module-level helpers."""
    with patch("eureka_client.client.EurekaClient") as mock:
        instance = MagicMock()
        instance.register_instance.return_value = RegisteredInstance(id="10.5.0.50:my-app:8080")
        instance.instance_id = "10.5.0.50:my-app:8080"
        mock.return_value = instance
        yield mock


class TestGlobalFunctions:
    """Tests for module-level functions."""

    def teardown_method(self):
        """Clean up after each test."""
        shutdown()

    def test_init_with_arguments(self, mock_eureka_client):
        """Test init with explicit settings."""
        result = init(URLS, "my-app", "10.5.0.50", 8080, ttl=30, heartbeat_interval=60)

        assert result.id == "10.5.0.50:my-app:8080"
        mock_eureka_client.assert_called_once_with(URLS, "my-app", "10.5.0.50", 8080)
        mock_eureka_client.return_value.register_instance.assert_called_once_with("10.5.0.50", 30, False)
        assert get_client() is mock_eureka_client.return_value

    def test_init_from_env(self, mock_eureka_client):
        """Test init falling back to environment variables."""
        env = {
            "EUREKA_SERVICE_URLS": "http://eureka:8761/eureka",
            "EUREKA_APP_ID": "my-app",
            "EUREKA_INSTANCE_HOST": "10.5.0.50",
            "EUREKA_INSTANCE_PORT": "8080",
        }
        with patch.dict("os.environ", env, clear=True):
            init(heartbeat_interval=60)

        mock_eureka_client.assert_called_once_with(["http://eureka:8761/eureka"], "my-app", "10.5.0.50", 8080)

    def test_init_mixes_arguments_and_env(self, mock_eureka_client):
        """Test init with some arguments given and the rest from the environment."""
        with patch.dict("os.environ", {"EUREKA_INSTANCE_PORT": "8080"}, clear=True):
            init(URLS, "my-app", "10.5.0.50", heartbeat_interval=60)

        mock_eureka_client.assert_called_once_with(URLS, "my-app", "10.5.0.50", 8080)

    def test_init_explicit_port_zero(self, mock_eureka_client):
        """Test that an explicit port 0 is passed through."""
        with patch.dict("os.environ", {"EUREKA_INSTANCE_PORT": "8080"}, clear=True):
            init(URLS, "my-app", "10.5.0.50", 0, heartbeat_interval=60)

        mock_eureka_client.assert_called_once_with(URLS, "my-app", "10.5.0.50", 0)

    def test_init_without_settings_raises(self):
        """Test init without URLs raises ConfigurationError."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConfigurationError, match="EUREKA_SERVICE_URLS"):
                init()

    def test_init_registration_failure(self, mock_eureka_client):
        """Test that a failed registration closes the client and re-raises."""
        mock_eureka_client.return_value.register_instance.side_effect = RegistrationFailed("boom")

        with pytest.raises(RegistrationFailed):
            init(URLS, "my-app", "10.5.0.50", 8080)

        mock_eureka_client.return_value.close.assert_called_once()
        with pytest.raises(RuntimeError):
            get_client()

    def test_shutdown_unregisters(self, mock_eureka_client):
        """Test that shutdown unregisters with a bounded context."""
        init(URLS, "my-app", "10.5.0.50", 8080, heartbeat_interval=60)
        client = mock_eureka_client.return_value

        shutdown()

        client.unregister_instance.assert_called_once()
        ctx = client.unregister_instance.call_args[0][0]
        assert isinstance(ctx, CallContext)
        assert ctx.remaining() is not None
        client.close.assert_called_once()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_client()

    def test_shutdown_logs_unregister_failure(self, mock_eureka_client):
        """Test that an unregister failure does not raise from shutdown."""
        init(URLS, "my-app", "10.5.0.50", 8080, heartbeat_interval=60)
        client = mock_eureka_client.return_value
        client.unregister_instance.side_effect = ProtocolError("nope", status_code=500)

        shutdown()

        client.close.assert_called_once()

    def test_get_client_before_init_raises(self):
        """Test get_client before init raises RuntimeError."""
        with pytest.raises(RuntimeError, match="not initialized"):
            get_client()
