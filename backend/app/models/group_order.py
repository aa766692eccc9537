"""GroupOrder ORM model."""
import enum
from sqlalchemy import Column, Integer, DateTime, Enum as SAEnum
from sqlalchemy.sql import func
from app.database import Base


class OrderStatus(str, enum.Enum):
    open = "open"
    closed = "closed"
    completed = "completed"


class GroupOrder(Base):
    __tablename__ = "group_orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    delivery_cost = Column(Integer, nullable=False, default=0)  # split between participants
    status = Column(SAEnum(OrderStatus), nullable=False, default=OrderStatus.open)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
