from __future__ import annotations

import ipaddress
import logging
from typing import Iterable

import requests

from drupot.errors import PublicIPError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5.0


def get_public_ip(urls: Iterable[str], timeout: float = REQUEST_TIMEOUT) -> str:
    """Ask each echo service in turn; the first parseable address wins."""
    for url in urls:
        try:
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Public IP lookup via %s failed: %s", url, exc)
            continue
        text = response.text.strip()
        try:
            return str(ipaddress.ip_address(text))
        except ValueError:
            logger.warning("Public IP lookup via %s returned %r", url, text[:64])
    raise PublicIPError("Unable to get public IP")
