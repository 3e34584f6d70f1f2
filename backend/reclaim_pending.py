import logging
import os
import sys

# Add 'backend' folder to Python path
sys.path.append(os.path.abspath(os.path.dirname(__file__)))

from database import SessionLocal
from services import reclaim
from services.notifications import DatabaseNotificationSink
from utils.audit import write_log_safely

logger = logging.getLogger("reclaim_pending")


def main():
    """Cancel online orders whose payment window lapsed. Meant to run from cron."""
    session = SessionLocal()
    try:
        reclaimed = reclaim.reclaim_abandoned_online_orders(session, notifier=DatabaseNotificationSink())
        write_log_safely(session, user_id=None, action="ORDER_RECLAIM", resource="orders",
                         status="SUCCESS", meta={"order_ids": reclaimed, "source": "cron"})
    finally:
        session.close()
    print(f"Reclaimed {len(reclaimed)} pending online orders.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
