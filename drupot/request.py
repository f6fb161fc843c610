from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from drupot.errors import AddressError


def split_host_port(address: str) -> Tuple[str, int]:
    """Split ``host:port`` or ``[v6host]:port`` into its parts.

    Raises AddressError for anything that does not carry a usable port.
    """
    if not address:
        raise AddressError("missing address")
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise AddressError(f"missing ']' in address {address!r}")
        host = address[1:end]
        rest = address[end + 1:]
        if not rest.startswith(":"):
            raise AddressError(f"missing port in address {address!r}")
        port_text = rest[1:]
    else:
        host, sep, port_text = address.rpartition(":")
        if not sep:
            raise AddressError(f"missing port in address {address!r}")
        if ":" in host:
            raise AddressError(f"too many colons in address {address!r}")
    if not (port_text.isascii() and port_text.isdigit()):
        raise AddressError(f"invalid port {port_text!r} in address {address!r}")
    port = int(port_text)
    if port > 65535:
        raise AddressError(f"port out of range in address {address!r}")
    return host, port


def join_host_port(host: str, port: Any) -> str:
    if port in (None, ""):
        return host or ""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything the pipeline needs to know about one inbound request."""

    method: str
    path: str
    remote_address: str
    query_string: str = ""
    scheme: str = "http"
    host: str = ""
    proto: str = "HTTP/1.1"
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""
    form: Dict[str, List[str]] = field(default_factory=dict)
    transfer_encoding: List[str] = field(default_factory=list)

    @property
    def source_ip(self) -> str:
        """Host part of the remote address, or an empty string if unusable."""
        try:
            return split_host_port(self.remote_address)[0]
        except AddressError:
            return ""

    @property
    def proto_version(self) -> Tuple[int, int]:
        _, _, version = self.proto.partition("/")
        major, _, minor = version.partition(".")
        try:
            return int(major), int(minor or 0)
        except ValueError:
            return 1, 1

    def form_value(self, name: str) -> str:
        values = self.form.get(name) or [""]
        return values[0]


def describe_request(req: Any, with_body: bool = True) -> RequestDescriptor:
    """Snapshot a Flask/werkzeug request.

    The body is buffered before ``req.form`` is touched: werkzeug parses the
    form from the cached bytes, so the stream is only drained once. With
    ``with_body=False`` neither is read, for bodies over the size limit.
    """
    body = b""
    form: Dict[str, List[str]] = {}
    if with_body:
        body = req.get_data(cache=True)
        form = {key: req.form.getlist(key) for key in req.form.keys()}

    headers: Dict[str, List[str]] = {}
    for name in req.headers.keys():
        if name not in headers:
            headers[name] = req.headers.getlist(name)

    transfer_encoding = [
        item.strip()
        for item in req.headers.get("Transfer-Encoding", "").split(",")
        if item.strip()
    ]

    environ = req.environ
    remote = join_host_port(environ.get("REMOTE_ADDR") or "", environ.get("REMOTE_PORT"))

    return RequestDescriptor(
        method=req.method,
        path=req.path,
        remote_address=remote,
        query_string=req.query_string.decode("latin-1"),
        scheme=req.scheme,
        host=req.host,
        proto=environ.get("SERVER_PROTOCOL") or "HTTP/1.1",
        headers=headers,
        body=body,
        form=form,
        transfer_encoding=transfer_encoding,
    )
