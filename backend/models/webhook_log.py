# backend/models/webhook_log.py
from sqlalchemy import Column, Integer, String, DateTime, JSON
from database import Base
from utils.clock import utcnow

# Raw record of every payment gateway webhook delivery
class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(30), nullable=False)
    event = Column(String(80), nullable=False, index=True)
    payload = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="PENDING")
    error = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
