"""Decide which requests are worth reporting and how to label them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, FrozenSet, Iterable, Optional

if TYPE_CHECKING:
    from drupot.request import RequestDescriptor
    from drupot.store import EngagementStore

logger = logging.getLogger(__name__)

CHANGELOG_PATH = "/CHANGELOG.txt"
NODE_PREFIX = "/node/"
LOGIN_PATH = "/user/login"

# Drupal's login form field names.
USERNAME_FIELD = "name"
PASSWORD_FIELD = "pass"


class Signature(str, Enum):
    INDEX = "drupal.index"
    SEEN_BEFORE = "drupal.seen_before"
    CHANGELOG_SCAN = "drupal.changelog_scan"
    NODE_EXPLOIT = "drupal.cve-2019-6340"
    LOGIN_SCAN = "drupal.login_scan"
    LOGIN_ATTEMPT = "drupal.login_attempt"

    @classmethod
    def lookup(cls, name: str) -> "Signature":
        """Accept either the member name (any case) or the wire label."""
        text = name.strip()
        try:
            return cls[text.upper()]
        except KeyError:
            pass
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"unknown signature {name!r}") from None


@dataclass(frozen=True)
class FlagPolicy:
    """Signatures that mark their source as an engaged attacker.

    A changelog probe always flags; whether login scans or plain index hits
    count as well is left to configuration.
    """

    signatures: FrozenSet[Signature] = frozenset({Signature.CHANGELOG_SCAN, Signature.NODE_EXPLOIT})

    def __post_init__(self) -> None:
        if Signature.CHANGELOG_SCAN not in self.signatures:
            object.__setattr__(self, "signatures", self.signatures | {Signature.CHANGELOG_SCAN})

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "FlagPolicy":
        return cls(frozenset(Signature.lookup(name) for name in names))

    def flags(self, signature: Signature) -> bool:
        return signature in self.signatures


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str


@dataclass(frozen=True)
class Classification:
    signature: Optional[Signature] = None
    fingerprinted: bool = False
    flagged_now: bool = False
    credentials: Optional[Credentials] = None

    @property
    def reportable(self) -> bool:
        return self.signature is not None


NO_SIGNATURE = Classification()


@dataclass
class RequestClassifier:
    store: "EngagementStore"
    policy: FlagPolicy = field(default_factory=FlagPolicy)

    def signature_for(self, descriptor: "RequestDescriptor") -> Optional[Signature]:
        """Route-level signature, or None for paths with no intrinsic meaning."""
        path = descriptor.path
        if path == CHANGELOG_PATH:
            return Signature.CHANGELOG_SCAN
        if path.startswith(NODE_PREFIX):
            return Signature.NODE_EXPLOIT
        if path.rstrip("/") == LOGIN_PATH:
            if descriptor.method == "POST":
                return Signature.LOGIN_ATTEMPT
            return Signature.LOGIN_SCAN
        return None

    def classify(self, descriptor: "RequestDescriptor") -> Classification:
        source = descriptor.source_ip
        seen = bool(source) and self.store.is_flagged(source)
        signature = self.signature_for(descriptor)

        if signature is None:
            signature = Signature.SEEN_BEFORE if seen else Signature.INDEX

        flagged_now = False
        if source and self.policy.flags(signature):
            flagged_now = self.store.flag(source)
            if flagged_now:
                logger.info("Flagged %s after %s on %s", source, signature.value, descriptor.path)

        credentials = None
        if signature is Signature.LOGIN_ATTEMPT:
            credentials = Credentials(
                username=descriptor.form_value(USERNAME_FIELD),
                password=descriptor.form_value(PASSWORD_FIELD),
            )

        return Classification(
            signature=signature,
            fingerprinted=seen,
            flagged_now=flagged_now,
            credentials=credentials,
        )
