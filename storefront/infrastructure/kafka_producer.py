import json
import logging
from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from storefront.application.interfaces import EventPublisher

logger = logging.getLogger(__name__)


def _serialize(event: dict) -> bytes:
    return json.dumps(event, default=str).encode()


class KafkaProducerClient(EventPublisher):
    """Order lifecycle events, keyed by order id so that one order's events
    land in one partition and keep their order."""

    def __init__(self, bootstrap_servers: str, topic: str, client_id: str = "storefront-orders"):
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._client_id = client_id
        self._producer: AIOKafkaProducer | None = None

    async def start(self):
        if self._producer:
            return
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._bootstrap_servers,
            client_id=self._client_id,
            acks="all",
            enable_idempotence=True,
            key_serializer=str.encode,
            value_serializer=_serialize
        )
        await self._producer.start()
        logger.info(f"Kafka producer started, topic {self._topic}")

    async def stop(self):
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info("Kafka producer stopped")

    async def publish(self, event_type: str, key: str, payload: dict) -> bool:
        """False when the broker did not acknowledge; the outbox retries later"""
        if not self._producer:
            logger.error(f"Kafka producer not started, {event_type} for order {key} not sent")
            return False

        try:
            await self._producer.send_and_wait(
                self._topic,
                key=key,
                value={"event_type": event_type, **payload},
                headers=[("event_type", event_type.encode())]
            )
        except KafkaError as e:
            logger.error(f"Failed to publish {event_type} for order {key}: {e}")
            return False

        logger.debug(f"Published {event_type} for order {key}")
        return True
