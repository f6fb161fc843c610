from __future__ import annotations

import logging
from typing import Optional

from drupot.channel import PublicationChannel
from drupot.classifier import Classification, RequestClassifier
from drupot.eventlog import EventLog
from drupot.events import EventNormalizer
from drupot.request import RequestDescriptor

logger = logging.getLogger(__name__)


class EventPipeline:
    """classify -> normalize -> publish, once per inbound request."""

    def __init__(
        self,
        classifier: RequestClassifier,
        normalizer: EventNormalizer,
        channel: PublicationChannel,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self.classifier = classifier
        self.normalizer = normalizer
        self.channel = channel
        self.event_log = event_log

    def handle(self, descriptor: RequestDescriptor) -> Classification:
        classification = self.classifier.classify(descriptor)
        if not classification.reportable:
            return classification

        logger.info(
            "%s request from %s: %s %s",
            "Seen" if classification.fingerprinted else "New",
            descriptor.source_ip or descriptor.remote_address or "unknown",
            descriptor.method,
            descriptor.path,
        )

        event = self.normalizer.normalize(descriptor, classification)
        if event is None:
            return classification

        payload = event.to_json()
        self.channel.submit(payload)
        if self.event_log is not None:
            try:
                self.event_log.write(payload)
            except OSError as exc:
                logger.warning("Unable to write event log %s: %s", self.event_log.path, exc)
        return classification
