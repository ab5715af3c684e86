import json
import logging
import time

import pika
from pika.exceptions import AMQPError

logger = logging.getLogger(__name__)


class ChangePublisher:
    """Publishes ``{table, type, id}`` change notifications to a topic exchange.

    Consumers re-fetch the table when notified. Publishing is fire-and-forget:
    a broker outage is logged and never fails the write that triggered it.
    """

    def __init__(self, url: str, exchange: str = "changes", enabled: bool = True):
        self.url = url
        self.exchange = exchange
        self.enabled = enabled

    def publish(self, table: str, event_type: str, record_id) -> bool:
        if not self.enabled:
            return False
        event = {"table": table, "type": event_type, "id": record_id, "ts": int(time.time())}
        try:
            connection = pika.BlockingConnection(pika.URLParameters(self.url))
            try:
                ch = connection.channel()
                ch.exchange_declare(exchange=self.exchange, exchange_type="topic", durable=False)
                ch.basic_publish(
                    exchange=self.exchange,
                    routing_key=f"{table}.{event_type.lower()}",
                    body=json.dumps(event).encode("utf-8"),
                )
            finally:
                connection.close()
        except (AMQPError, OSError) as e:
            logger.warning("Failed to publish %s %s event for id %s: %s", table, event_type, record_id, e)
            return False
        logger.debug("Published %s", event)
        return True
