"""
Eureka Client - REST transport.

Implements the Eureka REST operations
(https://github.com/Netflix/eureka/wiki/Eureka-REST-operations) on top of
httpx, with single-pass failover across the configured registry servers.

Only transport-level failures (connection refused, DNS, timeouts) move on
to the next server. Any HTTP response, whatever its status, ends the loop
and is interpreted by the calling operation.
"""

import logging
from typing import Callable, Iterable, Mapping, Optional, Tuple, Type, TypeVar, Union
from urllib.parse import quote

import httpx

from eureka_client.context import CallContext
from eureka_client.errors import (
    ConfigurationError,
    DecodeError,
    InvalidArgument,
    InvalidURL,
    OperationCancelled,
    ProtocolError,
    TransportError,
)
from eureka_client.models import Application, Applications, Instance, InstanceStatus
from eureka_client.url import normalize_base_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
CONNECT_TIMEOUT = 10.0
XML_CONTENT_TYPE = "application/xml"

TransportWrapper = Callable[[httpx.BaseTransport], httpx.BaseTransport]
Status = Union[str, InstanceStatus]

_Model = TypeVar("_Model", Instance, Application, Applications)


def _segment(value: str) -> str:
    """Percent-encode one path segment, keeping ':' for instance IDs."""
    return quote(str(value), safe=":")


def _status_value(status: Status) -> str:
    return status.value if isinstance(status, InstanceStatus) else str(status)


POOL_LIMITS = httpx.Limits(
    max_connections=100,
    max_keepalive_connections=100,
    keepalive_expiry=90.0,
)


class EurekaAPIClient:
    """
    Low-level client for the Eureka REST API.

    Safe to share between threads: the only state is the immutable tuple of
    base URLs and the httpx connection pool.
    """

    def __init__(
        self,
        *base_urls: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_urls: Registry URLs, tried in order (e.g., http://eureka:8761/eureka)
            timeout: Upper bound in seconds for a single request to one server
            transport: Optional httpx transport. Without one, httpx builds a
                pooled transport and honours HTTP(S)_PROXY/NO_PROXY.

        Raises:
            ConfigurationError: If no URL is given or one cannot be normalized
        """
        if not base_urls:
            raise ConfigurationError("at least one Eureka base URL is required")

        normalized = []
        for url in base_urls:
            if not isinstance(url, str):
                raise ConfigurationError(f"base URL must be a string, got {type(url).__name__}")
            try:
                normalized.append(normalize_base_url(url))
            except InvalidURL as e:
                raise ConfigurationError(f"invalid base URL {url!r}: {e}") from e

        self._base_urls: Tuple[str, ...] = tuple(normalized)
        self._timeout = timeout
        self._http = httpx.Client(
            transport=transport,
            limits=POOL_LIMITS,
            timeout=httpx.Timeout(timeout, connect=min(CONNECT_TIMEOUT, timeout)),
        )

    @property
    def base_urls(self) -> Tuple[str, ...]:
        return self._base_urls

    def wrap_transport(self, wrap: Optional[TransportWrapper]) -> None:
        """
        Wrap the underlying httpx transports, e.g. for tracing.

        The wrapper receives each current transport (the direct one and any
        proxy transport mounted from the environment) and returns the one to
        use from now on. Call this before sharing the client between threads.
        """
        if wrap is None:
            return
        # httpx has no public setter for transports of an existing client
        self._http._transport = wrap(self._http._transport)
        mounts = self._http._mounts
        for pattern, mounted in list(mounts.items()):
            if mounted is not None:
                mounts[pattern] = wrap(mounted)

    def close(self) -> None:
        """Close pooled connections."""
        self._http.close()

    def __enter__(self) -> "EurekaAPIClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ---------- Util ----------

    def _attempt_timeout(self, context: CallContext) -> httpx.Timeout:
        timeout = self._timeout
        remaining = context.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        return httpx.Timeout(timeout, connect=min(CONNECT_TIMEOUT, timeout))

    def _request(
        self,
        method: str,
        path: str,
        context: Optional[CallContext],
        params: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
    ) -> httpx.Response:
        """Send the request to each base URL in turn until one answers."""
        context = context or CallContext.background()
        headers = {"Accept": XML_CONTENT_TYPE}
        if body is not None:
            headers["Content-Type"] = XML_CONTENT_TYPE

        last_error: Optional[httpx.TransportError] = None
        last_url = ""
        for base_url in self._base_urls:
            context.raise_if_done()
            url = f"{base_url}{path}"
            logger.debug(f"{method} {url}")
            try:
                return self._http.request(
                    method,
                    url,
                    params=params,
                    content=body,
                    headers=headers,
                    timeout=self._attempt_timeout(context),
                )
            except httpx.TransportError as e:
                if context.done:
                    raise OperationCancelled(f"request to {base_url} interrupted: {e}") from e
                logger.warning(f"Request to {base_url} failed, trying next server: {type(e).__name__}: {e}")
                last_error = e
                last_url = base_url

        logger.error(f"All {len(self._base_urls)} Eureka servers failed for {method} {path}")
        raise TransportError(
            f"request to {last_url} failed: {type(last_error).__name__}: {last_error}",
            url=last_url,
        ) from last_error

    @staticmethod
    def _check_status(response: httpx.Response, expected: Iterable[int], what: str) -> None:
        if response.status_code not in expected:
            raise ProtocolError(
                f"unexpected response status for {what}: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                url=str(response.request.url),
            )

    @staticmethod
    def _decode(model: Type[_Model], response: httpx.Response, what: str) -> _Model:
        try:
            return model.from_xml(response.content)
        except DecodeError as e:
            raise e.add_context(f"failed to decode {what} response")

    # ---------- Requests ----------

    def register_instance(self, app_id: str, instance: Instance, context: Optional[CallContext] = None) -> None:
        """Register an instance: POST /apps/{appID}."""
        response = self._request("POST", f"/apps/{_segment(app_id)}", context, body=instance.to_xml())
        self._check_status(response, (201, 204), f"registration of application {app_id}")

    def unregister_instance(self, app_id: str, instance_id: str, context: Optional[CallContext] = None) -> None:
        """De-register an instance: DELETE /apps/{appID}/{instanceID}."""
        response = self._request("DELETE", f"/apps/{_segment(app_id)}/{_segment(instance_id)}", context)
        self._check_status(response, (204,), f"unregistering instance {instance_id} of application {app_id}")

    def heartbeat(self, app_id: str, instance_id: str, context: Optional[CallContext] = None) -> bool:
        """
        Renew the lease: PUT /apps/{appID}/{instanceID}.

        Returns:
            True if the lease was renewed, False if the server does not know
            the instance (it should be registered again)
        """
        response = self._request("PUT", f"/apps/{_segment(app_id)}/{_segment(instance_id)}", context)
        if response.status_code == 404:
            return False
        self._check_status(response, (200,), f"heartbeat of instance {instance_id}")
        return True

    def get_all_applications(self, context: Optional[CallContext] = None) -> Applications:
        """Query the whole registry: GET /apps."""
        response = self._request("GET", "/apps", context)
        self._check_status(response, (200,), "all applications")
        return self._decode(Applications, response, "applications")

    def get_application(self, app_id: str, context: Optional[CallContext] = None) -> Application:
        response = self._request("GET", f"/apps/{_segment(app_id)}", context)
        self._check_status(response, (200,), f"application {app_id}")
        return self._decode(Application, response, f"application {app_id}")

    def get_instance(self, app_id: str, instance_id: str, context: Optional[CallContext] = None) -> Instance:
        response = self._request("GET", f"/apps/{_segment(app_id)}/{_segment(instance_id)}", context)
        self._check_status(response, (200,), f"instance {instance_id} of application {app_id}")
        return self._decode(Instance, response, f"instance {instance_id}")

    def get_by_vip(self, vip: str, context: Optional[CallContext] = None) -> Applications:
        response = self._request("GET", f"/vips/{_segment(vip)}", context)
        self._check_status(response, (200,), f"VIP {vip}")
        return self._decode(Applications, response, f"VIP {vip}")

    def get_by_secure_vip(self, svip: str, context: Optional[CallContext] = None) -> Applications:
        response = self._request("GET", f"/svips/{_segment(svip)}", context)
        self._check_status(response, (200,), f"secure VIP {svip}")
        return self._decode(Applications, response, f"secure VIP {svip}")

    def set_status(
        self, app_id: str, instance_id: str, status: Status, context: Optional[CallContext] = None
    ) -> None:
        """Override the instance status: PUT /apps/{appID}/{instanceID}/status?value=..."""
        response = self._request(
            "PUT",
            f"/apps/{_segment(app_id)}/{_segment(instance_id)}/status",
            context,
            params={"value": _status_value(status)},
        )
        self._check_status(response, (204,), f"setting status of instance {instance_id} of application {app_id}")

    def clear_status_override(
        self, app_id: str, instance_id: str, suggested_fallback: Status, context: Optional[CallContext] = None
    ) -> None:
        """Remove the status override: DELETE /apps/{appID}/{instanceID}/status?value=..."""
        response = self._request(
            "DELETE",
            f"/apps/{_segment(app_id)}/{_segment(instance_id)}/status",
            context,
            params={"value": _status_value(suggested_fallback)},
        )
        self._check_status(
            response, (204,), f"clearing status override of instance {instance_id} of application {app_id}"
        )

    def update_metadata(
        self, app_id: str, instance_id: str, kv: Mapping[str, str], context: Optional[CallContext] = None
    ) -> None:
        """
        Update metadata: PUT /apps/{appID}/{instanceID}/metadata?key=value.

        Raises:
            InvalidArgument: If kv is empty (no request is sent)
        """
        if not kv:
            raise InvalidArgument("metadata map cannot be empty")

        response = self._request(
            "PUT",
            f"/apps/{_segment(app_id)}/{_segment(instance_id)}/metadata",
            context,
            params={str(k): str(v) for k, v in kv.items()},
        )
        self._check_status(
            response, (204,), f"updating metadata of instance {instance_id} of application {app_id}"
        )
