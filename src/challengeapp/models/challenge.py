# src/challengeapp/models/challenge.py

from sqlalchemy import Column, String, Date, Float, ForeignKey, Integer, Text, Index
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel

class Organizer(Base, TimestampedModel):
    __tablename__ = "organizers"

    name        = Column(String, nullable=False)
    challenges  = relationship("Challenge", back_populates="owner")


class Challenge(Base, TimestampedModel):
    __tablename__ = "challenges"

    owner_id    = Column(Integer, ForeignKey("organizers.id", ondelete="CASCADE"), nullable=False, index=True)
    title       = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    goal_km     = Column(Float, nullable=False, default=0.0)
    start_date  = Column(Date, nullable=False)
    end_date    = Column(Date, nullable=False)

    owner       = relationship("Organizer", back_populates="challenges")
    athletes    = relationship("Athlete", back_populates="challenge", passive_deletes=True)


class Athlete(Base, TimestampedModel):
    __tablename__ = "athletes"

    challenge_id     = Column(Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, index=True)
    name             = Column(String, nullable=False)
    phone            = Column(String, nullable=False, default="")
    bib_number       = Column(String, nullable=False, default="")
    birth_date       = Column(Date, nullable=True)
    gender           = Column(String, nullable=False, default="")
    shirt_size       = Column(String, nullable=False, default="")
    personal_goal_km = Column(Float, nullable=True)

    challenge        = relationship("Challenge", back_populates="athletes")
    enrollment       = relationship("Enrollment", back_populates="athlete", uselist=False, passive_deletes=True)
    activities       = relationship("Activity", back_populates="athlete", passive_deletes=True)


class Activity(Base, TimestampedModel):
    __tablename__ = "activities"

    athlete_id  = Column(Integer, ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False, index=True)
    date        = Column(Date, nullable=False)
    km          = Column(Float, nullable=False)
    note        = Column(Text, nullable=False, default="")

    athlete     = relationship("Athlete", back_populates="activities")

    __table_args__ = (
        Index("idx_activities_date", "date"),
    )
