import asyncio
import logging

from storefront.database import AsyncSessionLocal
from storefront.infrastructure.unit_of_work import UnitOfWork
from storefront.infrastructure.kafka_producer import KafkaProducerClient
from storefront.application.interfaces import EventPublisher
from storefront.application.process_outbox import ProcessOutboxEventsUseCase
from storefront.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def relay_forever(
    publisher: EventPublisher,
    unit_of_work: UnitOfWork,
    poll_interval: float = 3.0,
    batch_size: int = 20
):
    """Polls the outbox; a full batch means a backlog, so the next one starts at once"""
    use_case = ProcessOutboxEventsUseCase(unit_of_work, publisher)
    while True:
        try:
            processed = await use_case(limit=batch_size)
        except Exception as e:
            logger.error(f"Outbox relay error: {e}", exc_info=True)
            await asyncio.sleep(10)
            continue

        if processed:
            logger.info(f"Published {processed} order events")
        if processed < batch_size:
            await asyncio.sleep(poll_interval)


async def main():
    producer = KafkaProducerClient(settings.KAFKA_BOOTSTRAP_SERVERS, settings.ORDER_EVENTS_TOPIC)
    await producer.start()
    logger.info(f"Outbox relay started, topic {settings.ORDER_EVENTS_TOPIC}")
    try:
        await relay_forever(producer, UnitOfWork(AsyncSessionLocal))
    finally:
        await producer.stop()


if __name__ == "__main__":
    asyncio.run(main())
