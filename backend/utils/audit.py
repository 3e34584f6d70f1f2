import logging

from sqlalchemy.orm import Session
from models.log import Log

logger = logging.getLogger(__name__)

def write_log(db: Session, *, user_id, action, resource, status="SUCCESS", ip=None, meta=None):
    meta = meta or {}
    order_id = meta.get("order_id")
    entry = Log(
        user_id=user_id,
        action=action,
        resource=resource,
        status=status,
        ip=ip,
        order_id=order_id if isinstance(order_id, int) else None,
        meta=meta,
    )
    db.add(entry)
    db.commit()

# Audit after a commit that already succeeded, never let the log write fail the request
def write_log_safely(db: Session, **kwargs):
    try:
        write_log(db, **kwargs)
    except Exception as log_e:
        db.rollback()
        logger.exception("Failed to write audit log %s: %s", kwargs.get("action"), log_e)
