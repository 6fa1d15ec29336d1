"""
Eureka Client - XML wire model.

Dataclasses for the registry entities (instance, application, applications)
and their XML encoding. Element names are fixed by the Eureka REST protocol.
Optional elements are left out of the output when empty, and unknown
elements in server responses are ignored.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from eureka_client.errors import DecodeError

DEFAULT_DATA_CENTER = "MyOwn"

_TRUE_VALUES = {"true", "1"}
_FALSE_VALUES = {"false", "0", ""}


class InstanceStatus(str, Enum):
    """Instance states known to the registry."""
    UP = "UP"
    DOWN = "DOWN"
    STARTING = "STARTING"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"
    UNKNOWN = "UNKNOWN"


def _parse(data, root_tag: str) -> ET.Element:
    if isinstance(data, str):
        data = data.encode("utf-8")
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise DecodeError(f"malformed XML: {e}") from e
    if root.tag != root_tag:
        raise DecodeError(f"expected element <{root_tag}> but got <{root.tag}>")
    return root


def _text(parent: ET.Element, tag: str) -> str:
    child = parent.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text


def _int(value: str, what: str) -> int:
    value = value.strip()
    if not value:
        return 0
    try:
        return int(value)
    except ValueError:
        raise DecodeError(f"invalid integer for {what}: {value!r}") from None


def _bool(value: Optional[str], what: str) -> bool:
    lowered = (value or "").strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise DecodeError(f"invalid boolean for {what}: {value!r}")


def _sub(parent: ET.Element, tag: str, text: str = "") -> ET.Element:
    child = ET.SubElement(parent, tag)
    if text:
        child.text = text
    return child


def _sub_optional(parent: ET.Element, tag: str, text: str) -> None:
    if text:
        _sub(parent, tag, text)


@dataclass
class Port:
    """Port number plus the enabled flag carried as an XML attribute."""
    value: int
    enabled: bool = True

    def to_element(self, tag: str) -> ET.Element:
        element = ET.Element(tag, enabled="true" if self.enabled else "false")
        element.text = str(self.value)
        return element

    @classmethod
    def from_element(cls, element: ET.Element) -> "Port":
        return cls(
            value=_int(element.text or "", element.tag),
            enabled=_bool(element.get("enabled"), f"{element.tag}@enabled"),
        )


@dataclass
class DataCenterInfo:
    name: str = DEFAULT_DATA_CENTER


@dataclass
class LeaseInfo:
    """Lease settings; zero values are not written."""
    eviction_duration_in_secs: int = 0
    renewal_interval_in_secs: int = 0
    duration_in_secs: int = 0

    def to_element(self) -> ET.Element:
        element = ET.Element("leaseInfo")
        for tag, value in (
            ("renewalIntervalInSecs", self.renewal_interval_in_secs),
            ("durationInSecs", self.duration_in_secs),
            ("evictionDurationInSecs", self.eviction_duration_in_secs),
        ):
            if value:
                _sub(element, tag, str(value))
        return element

    @classmethod
    def from_element(cls, element: ET.Element) -> "LeaseInfo":
        return cls(
            eviction_duration_in_secs=_int(_text(element, "evictionDurationInSecs"), "evictionDurationInSecs"),
            renewal_interval_in_secs=_int(_text(element, "renewalIntervalInSecs"), "renewalIntervalInSecs"),
            duration_in_secs=_int(_text(element, "durationInSecs"), "durationInSecs"),
        )


@dataclass
class MetadataEntry:
    key: str
    value: str = ""


# (xml tag, attribute) pairs for the optional string fields, in protocol order
_LEADING_OPTIONAL = (
    ("vipAddress", "vip_address"),
    ("secureVipAddress", "secure_vip_address"),
)
_URL_FIELDS = (
    ("homePageUrl", "home_page_url"),
    ("statusPageUrl", "status_page_url"),
    ("healthCheckUrl", "health_check_url"),
)
_TRAILING_OPTIONAL = (
    ("instanceId", "instance_id"),
    ("overriddenstatus", "overridden_status"),
    ("isCoordinatingDiscoveryServer", "is_coordinating_discovery_server"),
    ("lastUpdatedTimestamp", "last_updated_timestamp"),
    ("lastDirtyTimestamp", "last_dirty_timestamp"),
    ("actionType", "action_type"),
    ("countryId", "country_id"),
)


@dataclass
class Instance:
    """One registered service process."""
    host_name: str = ""
    app: str = ""
    ip_addr: str = ""
    status: str = InstanceStatus.UP.value
    vip_address: str = ""
    secure_vip_address: str = ""
    port: Optional[Port] = None
    secure_port: Optional[Port] = None
    home_page_url: str = ""
    status_page_url: str = ""
    health_check_url: str = ""
    data_center_info: DataCenterInfo = field(default_factory=DataCenterInfo)
    lease_info: Optional[LeaseInfo] = None
    metadata: List[MetadataEntry] = field(default_factory=list)
    instance_id: str = ""
    overridden_status: str = ""
    is_coordinating_discovery_server: str = ""
    last_updated_timestamp: str = ""
    last_dirty_timestamp: str = ""
    action_type: str = ""
    country_id: str = ""

    def metadata_dict(self) -> Dict[str, str]:
        """Metadata entries as a dict (later duplicates win)."""
        return {entry.key: entry.value for entry in self.metadata}

    def to_element(self) -> ET.Element:
        root = ET.Element("instance")
        _sub(root, "hostName", self.host_name)
        _sub(root, "app", self.app)
        _sub(root, "ipAddr", self.ip_addr)
        for tag, attr in _LEADING_OPTIONAL:
            _sub_optional(root, tag, getattr(self, attr))
        _sub(root, "status", self.status)
        if self.port is not None:
            root.append(self.port.to_element("port"))
        if self.secure_port is not None:
            root.append(self.secure_port.to_element("securePort"))
        for tag, attr in _URL_FIELDS:
            _sub_optional(root, tag, getattr(self, attr))

        dc = _sub(root, "dataCenterInfo")
        _sub(dc, "name", self.data_center_info.name)

        if self.lease_info is not None:
            root.append(self.lease_info.to_element())
        if self.metadata:
            md = _sub(root, "metadata")
            for entry in self.metadata:
                _sub(md, entry.key, entry.value)

        for tag, attr in _TRAILING_OPTIONAL:
            _sub_optional(root, tag, getattr(self, attr))
        return root

    def to_xml(self) -> bytes:
        return ET.tostring(self.to_element(), encoding="utf-8")

    @classmethod
    def from_element(cls, element: ET.Element) -> "Instance":
        inst = cls(
            host_name=_text(element, "hostName"),
            app=_text(element, "app"),
            ip_addr=_text(element, "ipAddr"),
            status=_text(element, "status"),
        )
        for tag, attr in _LEADING_OPTIONAL + _URL_FIELDS + _TRAILING_OPTIONAL:
            setattr(inst, attr, _text(element, tag))

        port = element.find("port")
        if port is not None:
            inst.port = Port.from_element(port)
        secure_port = element.find("securePort")
        if secure_port is not None:
            inst.secure_port = Port.from_element(secure_port)

        dc = element.find("dataCenterInfo")
        if dc is not None:
            inst.data_center_info = DataCenterInfo(name=_text(dc, "name"))

        lease = element.find("leaseInfo")
        if lease is not None:
            inst.lease_info = LeaseInfo.from_element(lease)

        md = element.find("metadata")
        if md is not None:
            inst.metadata = [MetadataEntry(key=child.tag, value=child.text or "") for child in md]
        return inst

    @classmethod
    def from_xml(cls, data) -> "Instance":
        return cls.from_element(_parse(data, "instance"))


@dataclass
class Application:
    """A named group of instances, as returned by the registry."""
    name: str = ""
    instances: List[Instance] = field(default_factory=list)

    def to_element(self) -> ET.Element:
        root = ET.Element("application")
        _sub(root, "name", self.name)
        for inst in self.instances:
            root.append(inst.to_element())
        return root

    def to_xml(self) -> bytes:
        return ET.tostring(self.to_element(), encoding="utf-8")

    @classmethod
    def from_element(cls, element: ET.Element) -> "Application":
        return cls(
            name=_text(element, "name"),
            instances=[Instance.from_element(child) for child in element.findall("instance")],
        )

    @classmethod
    def from_xml(cls, data) -> "Application":
        return cls.from_element(_parse(data, "application"))


@dataclass
class Applications:
    """
    Full registry snapshot.

    versions_delta and apps_hashcode are used by the server for delta
    fetches; they are passed through untouched.
    """
    applications: List[Application] = field(default_factory=list)
    versions_delta: str = ""
    apps_hashcode: str = ""

    def get_application(self, name: str) -> Optional[Application]:
        """Find an application by name (case-insensitive)."""
        wanted = name.upper()
        for app in self.applications:
            if app.name.upper() == wanted:
                return app
        return None

    def to_element(self) -> ET.Element:
        root = ET.Element("applications")
        _sub_optional(root, "versions__delta", self.versions_delta)
        _sub_optional(root, "apps__hashcode", self.apps_hashcode)
        for app in self.applications:
            root.append(app.to_element())
        return root

    def to_xml(self) -> bytes:
        return ET.tostring(self.to_element(), encoding="utf-8")

    @classmethod
    def from_element(cls, element: ET.Element) -> "Applications":
        return cls(
            applications=[Application.from_element(child) for child in element.findall("application")],
            versions_delta=_text(element, "versions__delta"),
            apps_hashcode=_text(element, "apps__hashcode"),
        )

    @classmethod
    def from_xml(cls, data) -> "Applications":
        return cls.from_element(_parse(data, "applications"))
