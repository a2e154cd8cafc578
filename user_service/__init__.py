"""User service with a RabbitMQ request/response and publish gateway."""

__version__ = "0.1.0"
