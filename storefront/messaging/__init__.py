from .bus import RabbitMQProducer, publish_event

__all__ = ["RabbitMQProducer", "publish_event"]
