from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, func
from database import Base

# Audit trail of checkout outcomes: placements, rejections, payments, cancellations
class Log(Base):
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    ts = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Who did what to which resource, and how it ended (SUCCESS / FAIL / IGNORED)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(50), index=True)
    resource = Column(String(50), index=True)
    status = Column(String(20), index=True)
    ip = Column(String(64), nullable=True)

    # Order the event belongs to, when there is one
    order_id = Column(Integer, nullable=True, index=True)

    # Rejection code, amounts, gateway ids
    meta = Column(JSON, nullable=True)
