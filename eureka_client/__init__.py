"""
Eureka Client - Service registration and discovery against Netflix Eureka.

Usage:
    from eureka_client import EurekaClient, CallContext

    client = EurekaClient(
        ["http://eureka-1:8761/eureka", "http://eureka-2:8761/eureka"],
        app_id="orders",
        host="10.5.0.50",
        port=8080,
    )

    # Register, keep the lease alive, look up other services
    client.register_instance("10.5.0.50", ttl=30)
    client.heartbeat()
    apps = client.get_by_vip("payments")

    # Unregister with a bounded deadline on shutdown
    client.unregister_instance(CallContext(timeout=5.0))

Or let the module manage the lifecycle (settings from environment):

    from eureka_client import init, shutdown

    init(ttl=30)
    ...
    shutdown()
"""

from eureka_client.api import EurekaAPIClient
from eureka_client.client import (
    init,
    shutdown,
    get_client,
    run_heartbeat_loop,
    EurekaClient,
    EurekaSettings,
    RegisteredInstance,
)
from eureka_client.context import CallContext
from eureka_client.errors import (
    ConfigurationError,
    DecodeError,
    EurekaError,
    HeartbeatFailed,
    InstanceNotFound,
    InvalidArgument,
    InvalidURL,
    OperationCancelled,
    ProtocolError,
    RegistrationFailed,
    TransportError,
)
from eureka_client.models import (
    Application,
    Applications,
    DataCenterInfo,
    Instance,
    InstanceStatus,
    LeaseInfo,
    MetadataEntry,
    Port,
)
from eureka_client.url import normalize_base_url

__all__ = [
    "init",
    "shutdown",
    "get_client",
    "run_heartbeat_loop",
    "EurekaClient",
    "EurekaSettings",
    "RegisteredInstance",
    "EurekaAPIClient",
    "CallContext",
    "normalize_base_url",
    "Application",
    "Applications",
    "DataCenterInfo",
    "Instance",
    "InstanceStatus",
    "LeaseInfo",
    "MetadataEntry",
    "Port",
    "EurekaError",
    "ConfigurationError",
    "InvalidURL",
    "InvalidArgument",
    "TransportError",
    "ProtocolError",
    "DecodeError",
    "OperationCancelled",
    "RegistrationFailed",
    "HeartbeatFailed",
    "InstanceNotFound",
]

__version__ = "0.1.0"
