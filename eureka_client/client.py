"""
Eureka Client - Core client implementation.

EurekaClient binds one application identity (app ID, host, port) to the
REST transport and exposes register/heartbeat/query/unregister operations
without the app and instance ID plumbing.

The module-level init()/shutdown() helpers cover the usual service
lifecycle: register at startup, heartbeat from a daemon thread, and
unregister on exit.
"""

import atexit
import ipaddress
import logging
import os
import threading
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Union

import httpx

from eureka_client.api import DEFAULT_TIMEOUT, EurekaAPIClient, Status, TransportWrapper
from eureka_client.context import CallContext
from eureka_client.errors import (
    ConfigurationError,
    EurekaError,
    HeartbeatFailed,
    InstanceNotFound,
    InvalidArgument,
    RegistrationFailed,
)
from eureka_client.models import (
    DEFAULT_DATA_CENTER,
    Application,
    Applications,
    DataCenterInfo,
    Instance,
    InstanceStatus,
    LeaseInfo,
    Port,
)

logger = logging.getLogger(__name__)

IPAddress = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]

SHUTDOWN_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class RegisteredInstance:
    """Handle returned by a successful registration."""
    id: str


def _ipv4(ip: IPAddress) -> str:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError as e:
        raise InvalidArgument(f"invalid IP address {ip!r}") from e
    if isinstance(addr, ipaddress.IPv6Address):
        if addr.ipv4_mapped is None:
            raise InvalidArgument(f"IP address must be IPv4: {ip}")
        addr = addr.ipv4_mapped
    return str(addr)


class EurekaClient:
    """
    Registry client for a single application instance.

    Every operation takes an optional CallContext to bound or cancel the
    call. Instances are safe to share between threads.
    """

    def __init__(
        self,
        service_urls: Sequence[str],
        app_id: str,
        host: str,
        port: int,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            service_urls: Eureka server URLs, tried in order
            app_id: Application ID to register under (e.g., "orders")
            host: Host name advertised to the registry
            port: Port the service listens on
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport

        Raises:
            ConfigurationError: If no URL is given or one is invalid
        """
        if isinstance(service_urls, str):
            service_urls = [service_urls]
        self._api = EurekaAPIClient(*service_urls, timeout=timeout, transport=transport)
        self._app_id = app_id
        self._host = host
        self._port = port
        self._instance_id = f"{host}:{app_id}:{port}"

    @property
    def app_id(self) -> str:
        return self._app_id

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def instance_id(self) -> str:
        return self._instance_id

    def wrap_transport(self, wrap: Optional[TransportWrapper]) -> None:
        """Wrap the underlying httpx transport (see EurekaAPIClient.wrap_transport)."""
        self._api.wrap_transport(wrap)

    def close(self) -> None:
        self._api.close()

    def __enter__(self) -> "EurekaClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def build_instance(self, ip: IPAddress, ttl: int, use_ssl: bool = False) -> Instance:
        """Build the registration payload for this client's identity."""
        if ttl < 0:
            raise InvalidArgument(f"ttl must not be negative: {ttl}")
        return Instance(
            host_name=self._host,
            app=self._app_id,
            ip_addr=_ipv4(ip),
            status=InstanceStatus.UP.value,
            vip_address=self._app_id,
            secure_vip_address=self._app_id,
            port=Port(value=self._port, enabled=not use_ssl),
            secure_port=Port(value=self._port, enabled=use_ssl),
            data_center_info=DataCenterInfo(name=DEFAULT_DATA_CENTER),
            lease_info=LeaseInfo(eviction_duration_in_secs=ttl),
            instance_id=self._instance_id,
        )

    def register_instance(
        self,
        ip: IPAddress,
        ttl: int,
        use_ssl: bool = False,
        context: Optional[CallContext] = None,
    ) -> RegisteredInstance:
        """
        Register this instance with the registry.

        Args:
            ip: IPv4 address advertised to the registry
            ttl: Lease eviction duration in seconds
            use_ssl: Enable securePort instead of port

        Returns:
            RegisteredInstance carrying the instance ID

        Raises:
            InvalidArgument: If ip is not IPv4 or ttl is negative
            RegistrationFailed: If the registry call fails
        """
        instance = self.build_instance(ip, ttl, use_ssl)
        try:
            self._api.register_instance(self._app_id, instance, context)
        except EurekaError as e:
            raise RegistrationFailed(f"failed to register instance {self._instance_id}: {e}") from e

        logger.info(f"Registered instance {self._instance_id} (ttl={ttl}s, ssl={use_ssl})")
        return RegisteredInstance(id=self._instance_id)

    def heartbeat(self, context: Optional[CallContext] = None) -> None:
        """
        Renew this instance's lease.

        Raises:
            InstanceNotFound: If the registry no longer knows the instance
            HeartbeatFailed: For any other failure
        """
        try:
            exists = self._api.heartbeat(self._app_id, self._instance_id, context)
        except EurekaError as e:
            raise HeartbeatFailed(f"failed to send heartbeat for instance {self._instance_id}: {e}") from e
        if not exists:
            raise InstanceNotFound(f"instance {self._instance_id} does not exist", instance_id=self._instance_id)

    def unregister_instance(self, context: Optional[CallContext] = None) -> None:
        try:
            self._api.unregister_instance(self._app_id, self._instance_id, context)
        except EurekaError as e:
            raise e.add_context(f"failed to unregister instance {self._instance_id}")
        logger.info(f"Unregistered instance {self._instance_id}")

    def get_all_applications(self, context: Optional[CallContext] = None) -> Applications:
        try:
            return self._api.get_all_applications(context)
        except EurekaError as e:
            raise e.add_context("failed to get all applications")

    def get_application(self, context: Optional[CallContext] = None) -> Application:
        """Fetch this client's own application."""
        try:
            return self._api.get_application(self._app_id, context)
        except EurekaError as e:
            raise e.add_context(f"failed to get application {self._app_id}")

    def get_instance(self, context: Optional[CallContext] = None) -> Instance:
        """Fetch this client's own instance as the registry sees it."""
        try:
            return self._api.get_instance(self._app_id, self._instance_id, context)
        except EurekaError as e:
            raise e.add_context(f"failed to get instance {self._instance_id} of application {self._app_id}")

    def get_by_vip(self, vip: str, context: Optional[CallContext] = None) -> Applications:
        try:
            return self._api.get_by_vip(vip, context)
        except EurekaError as e:
            raise e.add_context(f"failed to get applications by VIP {vip}")

    def get_by_secure_vip(self, svip: str, context: Optional[CallContext] = None) -> Applications:
        try:
            return self._api.get_by_secure_vip(svip, context)
        except EurekaError as e:
            raise e.add_context(f"failed to get applications by secure VIP {svip}")

    def set_status(self, status: Status, context: Optional[CallContext] = None) -> None:
        """Override the instance status (e.g. OUT_OF_SERVICE)."""
        try:
            self._api.set_status(self._app_id, self._instance_id, status, context)
        except EurekaError as e:
            raise e.add_context(f"failed to set status {getattr(status, 'value', status)} for instance {self._instance_id}")

    def clear_status_override(self, suggested_fallback: Status, context: Optional[CallContext] = None) -> None:
        try:
            self._api.clear_status_override(self._app_id, self._instance_id, suggested_fallback, context)
        except EurekaError as e:
            raise e.add_context(f"failed to clear status override for instance {self._instance_id}")

    def update_metadata(self, kv: Mapping[str, str], context: Optional[CallContext] = None) -> None:
        try:
            self._api.update_metadata(self._app_id, self._instance_id, kv, context)
        except EurekaError as e:
            raise e.add_context(f"failed to update metadata for instance {self._instance_id}")


# ---------------------------------------------------------------------------
# Environment configuration
# ---------------------------------------------------------------------------

@dataclass
class EurekaSettings:
    """Client settings, usually read from the environment."""
    service_urls: List[str]
    app_id: str
    host: str
    port: int

    @classmethod
    def from_env(
        cls,
        service_urls: Optional[Sequence[str]] = None,
        app_id: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> "EurekaSettings":
        """
        Resolve settings, reading each value not given from its environment variable.

        EUREKA_SERVICE_URLS (comma-separated, falls back to
        EUREKA_CLIENT_SERVICE_URL_DEFAULTZONE), EUREKA_APP_ID,
        EUREKA_INSTANCE_HOST and EUREKA_INSTANCE_PORT (default 8080).
        Explicit arguments win, even when falsy.

        Raises:
            ConfigurationError: Naming every variable that is still missing,
                or if EUREKA_INSTANCE_PORT is not an integer
        """
        missing = []

        if service_urls is None:
            raw_urls = os.getenv("EUREKA_SERVICE_URLS") or os.getenv("EUREKA_CLIENT_SERVICE_URL_DEFAULTZONE", "")
            service_urls = [u.strip() for u in raw_urls.split(",") if u.strip()]
            if not service_urls:
                missing.append("EUREKA_SERVICE_URLS")

        if app_id is None:
            app_id = os.getenv("EUREKA_APP_ID", "")
            if not app_id:
                missing.append("EUREKA_APP_ID")

        if host is None:
            host = os.getenv("EUREKA_INSTANCE_HOST", "")
            if not host:
                missing.append("EUREKA_INSTANCE_HOST")

        if missing:
            raise ConfigurationError(f"environment variable(s) not set: {', '.join(missing)}")

        if port is None:
            raw_port = os.getenv("EUREKA_INSTANCE_PORT", "8080")
            try:
                port = int(raw_port)
            except ValueError:
                raise ConfigurationError(f"EUREKA_INSTANCE_PORT must be an integer, got {raw_port!r}") from None

        return cls(service_urls=list(service_urls), app_id=app_id, host=host, port=port)


# ---------------------------------------------------------------------------
# Heartbeat loop
# ---------------------------------------------------------------------------

def run_heartbeat_loop(client: EurekaClient, interval: float, stop_event: threading.Event) -> None:
    """
    Send heartbeats until stop_event is set.

    One heartbeat goes out immediately, then one every *interval* seconds.
    Each heartbeat gets half an interval to complete. Failures are logged
    and the loop carries on.
    """
    while True:
        try:
            client.heartbeat(CallContext(timeout=interval / 2, cancel_event=stop_event))
            logger.debug(f"Heartbeat sent for instance {client.instance_id}")
        except InstanceNotFound as e:
            logger.warning(f"Heartbeat rejected, instance must be registered again: {e}")
        except HeartbeatFailed as e:
            logger.warning(f"Failed to send heartbeat: {e}")

        if stop_event.wait(timeout=interval):
            break

    logger.info(f"Stopped heartbeat loop for instance {client.instance_id}")


# ---------------------------------------------------------------------------
# Global lifecycle
# ---------------------------------------------------------------------------

_client: Optional[EurekaClient] = None
_heartbeat_thread: Optional[threading.Thread] = None
_stop_event = threading.Event()


def init(
    service_urls: Optional[Sequence[str]] = None,
    app_id: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
    ip: Optional[IPAddress] = None,
    ttl: int = 30,
    use_ssl: bool = False,
    heartbeat_interval: Optional[float] = None,
) -> RegisteredInstance:
    """
    Register with Eureka and start heartbeating in the background.

    Args:
        service_urls: Eureka URLs. Defaults to EUREKA_SERVICE_URLS env var.
        app_id: Application ID. Defaults to EUREKA_APP_ID env var.
        host: Advertised host. Defaults to EUREKA_INSTANCE_HOST env var.
        port: Advertised port. Defaults to EUREKA_INSTANCE_PORT env var.
        ip: Advertised IPv4 address (default: host)
        ttl: Lease eviction duration in seconds
        use_ssl: Advertise the secure port
        heartbeat_interval: Seconds between heartbeats (default: ttl / 3)

    Returns:
        The registered instance handle

    Raises:
        ConfigurationError: If settings are missing
        RegistrationFailed: If the initial registration fails
    """
    global _client, _heartbeat_thread

    if _client is not None:
        logger.warning("Eureka client already initialized, reinitializing...")
        shutdown()

    settings = EurekaSettings.from_env(service_urls=service_urls, app_id=app_id, host=host, port=port)

    client = EurekaClient(settings.service_urls, settings.app_id, settings.host, settings.port)
    try:
        instance = client.register_instance(settings.host if ip is None else ip, ttl, use_ssl)
    except EurekaError:
        client.close()
        raise

    interval = max(ttl / 3, 1.0) if heartbeat_interval is None else heartbeat_interval
    _stop_event.clear()
    _heartbeat_thread = threading.Thread(
        target=run_heartbeat_loop,
        args=(client, interval, _stop_event),
        name="eureka-heartbeat",
        daemon=True,
    )
    _heartbeat_thread.start()
    _client = client

    atexit.register(shutdown)

    logger.info(f"Eureka client started (heartbeat every {interval}s)")
    return instance


def shutdown() -> None:
    """Stop heartbeating, unregister the instance and close the client."""
    global _client, _heartbeat_thread

    if _heartbeat_thread is not None and _heartbeat_thread.is_alive():
        _stop_event.set()
        _heartbeat_thread.join(timeout=SHUTDOWN_TIMEOUT_SECONDS)
    _heartbeat_thread = None

    if _client is not None:
        try:
            _client.unregister_instance(CallContext(timeout=SHUTDOWN_TIMEOUT_SECONDS))
        except EurekaError as e:
            logger.warning(f"Failed to unregister instance: {e}")
        _client.close()
        _client = None
        logger.info("Eureka client stopped")


def get_client() -> EurekaClient:
    """
    Get the global client.

    Raises:
        RuntimeError: If init() hasn't been called
    """
    if _client is None:
        raise RuntimeError("Eureka client not initialized. Call init() first.")

    return _client
