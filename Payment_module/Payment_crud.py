"""
Webhook event log operations.
"""
from typing import Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from Login_module.Utils.datetime_utils import now_ist
from .Payment_model import WebhookEvent

logger = logging.getLogger(__name__)

STATUS_RECEIVED = "received"
STATUS_PROCESSED = "processed"
STATUS_FAILED = "failed"


def get_webhook_event(db: Session, provider: str, event_id: str) -> Optional[WebhookEvent]:
    return db.query(WebhookEvent).filter(
        WebhookEvent.provider == provider,
        WebhookEvent.event_id == event_id
    ).first()


def record_webhook_event(db: Session, provider: str, event_id: str, event_type: str) -> Tuple[WebhookEvent, bool]:
    """
    Log a delivery. Returns (event, should_process).
    An event already processed is not processed again; a failed one is retried.
    """
    existing = get_webhook_event(db, provider, event_id)
    if existing is None:
        try:
            event = WebhookEvent(provider=provider, event_id=event_id, event_type=event_type, status=STATUS_RECEIVED)
            db.add(event)
            db.commit()
            db.refresh(event)
            return event, True
        except IntegrityError:
            db.rollback()
            existing = get_webhook_event(db, provider, event_id)
            if existing is None:
                raise

    if existing.status == STATUS_PROCESSED:
        logger.warning(f"Duplicate {provider} webhook {event_id} ({event_type}); already processed")
        return existing, False

    existing.attempts = (existing.attempts or 0) + 1
    existing.status = STATUS_RECEIVED
    db.commit()
    db.refresh(existing)
    logger.info(f"Reprocessing {provider} webhook {event_id} (attempt {existing.attempts})")
    return existing, True


def mark_webhook_processed(db: Session, event: WebhookEvent) -> None:
    event.status = STATUS_PROCESSED
    event.error = None
    event.processed_at = now_ist()
    db.commit()


def mark_webhook_failed(db: Session, event: WebhookEvent, error: str) -> None:
    event.status = STATUS_FAILED
    event.error = error[:2000]
    db.commit()
