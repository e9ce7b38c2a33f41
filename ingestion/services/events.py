"""
Ingestion notifications on the event bus.

Publishing is best-effort: a failure is logged and absorbed, never allowed to
reach the persistence transaction that preceded it. Kafka delivery is
asynchronous and its delivery callback only logs.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from confluent_kafka import Producer
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ingestion.config import settings
from ingestion.models.job import RecordKind

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    PATIENT_CREATED = "PATIENT_CREATED"
    MEDICAL_RECORD_CREATED = "MEDICAL_RECORD_CREATED"
    FILE_PROCESSED = "FILE_PROCESSED"
    PROCESSING_ERROR = "PROCESSING_ERROR"


class IngestionEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType
    patient_id: str | None = None
    record_id: str | None = None
    source: str = settings.SERVICE_NAME
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = "SUCCESS"
    message: str | None = None

    def to_message(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class EventPublisher(Protocol):
    def publish(self, topic: str, key: str, event: IngestionEvent) -> None: ...


class KafkaEventPublisher:
    """Produces events to Kafka without waiting for acknowledgement."""

    def __init__(self, bootstrap_servers: str | None = None, acks: str | None = None):
        config = {
            "bootstrap.servers": bootstrap_servers or settings.KAFKA_BOOTSTRAP_SERVERS,
            "acks": acks or settings.KAFKA_PRODUCER_ACKS,
        }
        self.producer = Producer(config)
        logger.info("Kafka producer initialized for %s", config["bootstrap.servers"])

    @staticmethod
    def _delivery_report(err, msg) -> None:
        if err is not None:
            logger.error("Failed to publish event to topic [%s]: %s", msg.topic(), err)
        else:
            logger.info(
                "Event published to topic [%s] partition %s offset %s",
                msg.topic(),
                msg.partition(),
                msg.offset(),
            )

    def publish(self, topic: str, key: str, event: IngestionEvent) -> None:
        self.producer.produce(
            topic=topic,
            key=key.encode("utf-8"),
            value=event.to_message(),
            callback=self._delivery_report,
        )
        self.producer.poll(0)

    def flush(self, timeout: float = 10.0) -> None:
        remaining = self.producer.flush(timeout)
        if remaining:
            logger.warning("%d events still undelivered after flush", remaining)


class LoggingEventPublisher:
    """Used when the event bus is disabled: events are only logged."""

    def publish(self, topic: str, key: str, event: IngestionEvent) -> None:
        logger.info("Event [%s] for topic [%s]: %s", event.event_type.value, topic, key)

    def flush(self, timeout: float = 10.0) -> None:
        pass


def build_publisher() -> KafkaEventPublisher | LoggingEventPublisher:
    if settings.KAFKA_ENABLED:
        return KafkaEventPublisher()
    return LoggingEventPublisher()


class IngestionEvents:
    """Builds one event per notification and hands it to the publisher."""

    def __init__(
        self,
        publisher: EventPublisher,
        patient_topic: str = settings.KAFKA_PATIENT_TOPIC,
        medical_record_topic: str = settings.KAFKA_MEDICAL_RECORD_TOPIC,
    ):
        self.publisher = publisher
        self.patient_topic = patient_topic
        self.medical_record_topic = medical_record_topic

    def topic_for(self, kind: RecordKind) -> str:
        if kind == RecordKind.MEDICAL_RECORD:
            return self.medical_record_topic
        return self.patient_topic

    def patient_created(self, patient_id: int, full_name: str | None = None) -> bool:
        event = IngestionEvent(
            event_type=EventType.PATIENT_CREATED,
            patient_id=str(patient_id),
            message=f"Patient {full_name} created" if full_name else None,
        )
        return self._publish(self.patient_topic, event)

    def medical_record_created(
        self, patient_id: int, record_id: int, record_type: str | None = None
    ) -> bool:
        event = IngestionEvent(
            event_type=EventType.MEDICAL_RECORD_CREATED,
            patient_id=str(patient_id),
            record_id=str(record_id),
            message=f"{record_type} record created" if record_type else None,
        )
        return self._publish(self.medical_record_topic, event)

    def file_processed(self, kind: RecordKind, file_name: str, record_count: int) -> bool:
        event = IngestionEvent(
            event_type=EventType.FILE_PROCESSED,
            message=f"{file_name} parsed: {record_count} records",
        )
        return self._publish(self.topic_for(kind), event)

    def processing_error(self, kind: RecordKind, file_name: str, error: str) -> bool:
        event = IngestionEvent(
            event_type=EventType.PROCESSING_ERROR,
            status="FAILED",
            message=f"{file_name}: {error}",
        )
        return self._publish(self.topic_for(kind), event)

    def _publish(self, topic: str, event: IngestionEvent) -> bool:
        try:
            self.publisher.publish(topic, event.event_id, event)
        except Exception as exc:
            logger.error(
                "Error publishing event [%s] to topic [%s]: %s",
                event.event_type.value,
                topic,
                exc,
            )
            return False
        return True
