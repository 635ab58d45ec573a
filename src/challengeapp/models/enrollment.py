# src/challengeapp/models/enrollment.py

import enum

from sqlalchemy import Column, Date, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel

class PaymentType(enum.Enum):
    CASH = "cash"
    INSTALLMENTS = "installments"

class Enrollment(Base, TimestampedModel):
    __tablename__ = "enrollments"

    athlete_id         = Column(Integer, ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False, unique=True)
    total_amount_cents = Column(Integer, nullable=False)
    payment_type       = Column(Enum(PaymentType), nullable=False)
    installments_count = Column(Integer, nullable=False)
    first_due_date     = Column(Date, nullable=False)

    athlete            = relationship("Athlete", back_populates="enrollment")
    installments       = relationship(
        "Installment",
        back_populates="enrollment",
        order_by="Installment.number",
        passive_deletes=True,
    )


class Installment(Base, TimestampedModel):
    __tablename__ = "installments"

    enrollment_id = Column(Integer, ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True)
    number        = Column(Integer, nullable=False)
    due_date      = Column(Date, nullable=False, index=True)
    amount_cents  = Column(Integer, nullable=False)
    paid_at       = Column(Date, nullable=True)
    note          = Column(Text, nullable=False, default="")

    enrollment    = relationship("Enrollment", back_populates="installments")

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None
