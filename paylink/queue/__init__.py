from paylink.queue.broker import Broker, InMemoryBroker, RedisBroker, get_broker
from paylink.queue.enqueuer import DLQ_KEY, QUEUE_KEY, WebhookEnqueuer, WebhookJob

__all__ = [
    "Broker",
    "RedisBroker",
    "InMemoryBroker",
    "get_broker",
    "WebhookEnqueuer",
    "WebhookJob",
    "QUEUE_KEY",
    "DLQ_KEY",
]
