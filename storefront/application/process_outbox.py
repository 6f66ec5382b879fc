import json
import logging

from storefront.application.interfaces import EventPublisher

logger = logging.getLogger(__name__)


class ProcessOutboxEventsUseCase:
    """Relays pending order events to the broker.

    Delivery is at least once: an event is marked published only after the
    publisher confirmed it. When an event of an order fails, the later events
    of that order wait for the next run so consumers see them in order.
    """

    def __init__(self, unit_of_work, publisher: EventPublisher):
        self._uow = unit_of_work
        self._publisher = publisher

    async def __call__(self, limit: int = 10) -> int:
        async with self._uow() as uow:
            pending = await uow.outbox.get_pending(limit=limit)
        if not pending:
            return 0

        # the broker is called with no transaction open
        published_ids = []
        held_back = set()
        for event in pending:
            if event["order_id"] in held_back:
                continue
            if await self._relay(event):
                published_ids.append(event["id"])
            else:
                held_back.add(event["order_id"])

        if published_ids:
            async with self._uow() as uow:
                for event_id in published_ids:
                    await uow.outbox.mark_as_published(event_id)
                await uow.commit()

        if held_back:
            logger.warning(f"Events of {len(held_back)} orders held back until the next run")
        return len(published_ids)

    async def _relay(self, event: dict) -> bool:
        payload = event["event_data"]
        if isinstance(payload, str):
            payload = json.loads(payload)

        ok = await self._publisher.publish(
            event_type=event["event_type"],
            key=event["order_id"],
            payload={**payload, "event_id": event["id"]}
        )
        if not ok:
            logger.warning(f"{event['event_type']} event {event['id']} not published, will retry")
        return ok
