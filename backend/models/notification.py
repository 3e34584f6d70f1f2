# backend/models/notification.py
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, JSON
from database import Base
from utils.clock import utcnow

# In-app notification shown in the customer's notification feed
class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    type = Column(String(50), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
