"""Attack event records and the normalizer that builds them.

Each reportable request becomes one ``AttackEvent``. Field names on the wire
follow the hpfeeds schema shared with the other sensors on the same broker
(``Protocol``, ``App``, ``Channel``, ``Sensor`` and so on).
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from drupot.classifier import PASSWORD_FIELD, Classification, Credentials
from drupot.errors import AddressError
from drupot.identity import SensorIdentity
from drupot.request import RequestDescriptor, split_host_port

logger = logging.getLogger(__name__)

APP_NAME = "Drupot"
REDACTED = "<redacted>"

# Wire field names every event carries, in order.
EVENT_FIELDS = (
    "Protocol", "App", "Channel", "Sensor", "DestPort", "DestIp",
    "SrcPort", "SrcIp", "Meta", "Signature", "Fingerprinted", "Request",
)


def protect_password(password: str, policy: str) -> str:
    """Apply the configured credential policy to a submitted password."""
    if not password or policy == "plain":
        return password
    if policy == "redact":
        return REDACTED
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def trim_request(descriptor: RequestDescriptor, credential_policy: str = "hash") -> Dict[str, Any]:
    """Reduce a request to the JSON friendly snapshot embedded in events."""
    form = {key: list(values) for key, values in descriptor.form.items()}
    body = descriptor.body
    if credential_policy != "plain" and PASSWORD_FIELD in form:
        form[PASSWORD_FIELD] = [protect_password(value, credential_policy) for value in form[PASSWORD_FIELD]]
        # The raw body carries the same password, rebuild it from the cleaned form.
        body = urlencode(form, doseq=True).encode("utf-8")

    major, minor = descriptor.proto_version
    return {
        "Method": descriptor.method,
        "URL": {
            "Scheme": descriptor.scheme,
            "Host": descriptor.host,
            "Path": descriptor.path,
            "RawQuery": descriptor.query_string,
            "Fragment": "",
        },
        "Proto": descriptor.proto,
        "ProtoMajor": major,
        "ProtoMinor": minor,
        "Header": {name: list(values) for name, values in descriptor.headers.items()},
        "Body": base64.b64encode(body).decode("ascii"),
        "TransferEncoding": list(descriptor.transfer_encoding),
        "Host": descriptor.host,
        "PostForm": form,
    }


@dataclass(frozen=True)
class AttackEvent:
    protocol: str
    app: str
    channel: str
    sensor: str
    dest_port: int
    dest_ip: str
    src_port: int
    src_ip: str
    meta: str
    signature: str
    fingerprinted: bool
    request: Optional[Dict[str, Any]] = None
    credentials: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "Protocol": self.protocol,
            "App": self.app,
            "Channel": self.channel,
            "Sensor": self.sensor,
            "DestPort": self.dest_port,
            "DestIp": self.dest_ip,
            "SrcPort": self.src_port,
            "SrcIp": self.src_ip,
            "Meta": self.meta,
            "Signature": self.signature,
            "Fingerprinted": self.fingerprinted,
            "Request": self.request,
        }
        if self.credentials is not None:
            payload["Credentials"] = dict(self.credentials)
        return payload

    def to_json(self) -> bytes:
        # json.dumps escapes control characters, the output is always one line.
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")


class EventNormalizer:
    def __init__(
        self,
        sensor: SensorIdentity,
        *,
        channel: str,
        dest_port: int,
        meta: str = "",
        include_request: bool = True,
        credential_policy: str = "hash",
    ) -> None:
        self.sensor = sensor
        self.channel = channel
        self.dest_port = dest_port
        self.meta = meta
        self.include_request = include_request
        self.credential_policy = credential_policy

    @classmethod
    def from_config(cls, sensor: SensorIdentity, config: Any) -> "EventNormalizer":
        return cls(
            sensor,
            channel=config.hpfeeds.channel,
            dest_port=config.drupal.port,
            meta=config.hpfeeds.meta,
            include_request=config.hpfeeds.include_request,
            credential_policy=config.hpfeeds.credentials,
        )

    def _credentials(self, credentials: Optional[Credentials]) -> Optional[Dict[str, str]]:
        if credentials is None:
            return None
        return {
            "Username": credentials.username,
            "Password": protect_password(credentials.password, self.credential_policy),
        }

    def normalize(self, descriptor: RequestDescriptor, classification: Classification) -> Optional[AttackEvent]:
        """Build the event for a classified request, or None if it cannot be reported."""
        if not classification.reportable:
            return None
        try:
            src_ip, src_port = split_host_port(descriptor.remote_address)
        except AddressError as exc:
            logger.warning("Dropping %s event for %s: %s", classification.signature.value, descriptor.path, exc)
            return None

        request: Optional[Dict[str, Any]] = None
        if self.include_request:
            request = trim_request(descriptor, self.credential_policy)

        return AttackEvent(
            protocol=descriptor.proto,
            app=APP_NAME,
            channel=self.channel,
            sensor=self.sensor.uuid,
            dest_port=self.dest_port,
            dest_ip=self.sensor.ip,
            src_port=src_port,
            src_ip=src_ip,
            meta=self.meta,
            signature=classification.signature.value,
            fingerprinted=classification.fingerprinted,
            request=request,
            credentials=self._credentials(classification.credentials),
        )
