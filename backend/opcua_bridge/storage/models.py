"""
SQLAlchemy database models
"""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    """Return current UTC time"""
    return datetime.now(UTC)


class SensorReadingModel(Base):
    """
    Stores monitored values under their standard variable name

    One row per value change of a mapped monitored item.
    """

    __tablename__ = "mappedsensors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    variable = Column(String(64), nullable=False)  # temp1, temp2, flow1, flow2
    varvalues = Column(Float, nullable=False)
    recorded_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_mappedsensors_variable", "variable"),
        Index("idx_mappedsensors_variable_recorded", "variable", "recorded_at"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "variable": self.variable,
            "value": self.varvalues,
            "recorded_at": self.recorded_at.isoformat() if self.recorded_at else None,
        }

    def __repr__(self) -> str:
        return f"<SensorReadingModel(variable='{self.variable}', value={self.varvalues})>"
