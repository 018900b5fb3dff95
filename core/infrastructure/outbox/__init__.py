"""Transactional outbox."""
from .publisher import OutboxPublisher
from .service import OutboxService, aggregate_type_for
from .worker import run_outbox_worker

__all__ = ["OutboxPublisher", "OutboxService", "aggregate_type_for", "run_outbox_worker"]
