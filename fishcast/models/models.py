# fishcast/models/models.py
from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base
from sqlalchemy import JSON, Column, Integer, String, Float, DateTime, Boolean

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AlertProfileRecord(Base):
    """
    Gespeichertes Alert-Profil. Trigger liegen als JSON-Liste vor und werden
    erst beim Lauf validiert, damit ein defektes Profil den Batch nicht stoppt.
    """

    __tablename__ = "alert_profiles"

    id                = Column(String, primary_key=True)
    user_id           = Column(String, index=True, nullable=True)
    name              = Column(String, nullable=False)
    latitude          = Column(Float, nullable=False)
    longitude         = Column(Float, nullable=False)
    location_name     = Column(String, nullable=True)
    is_active         = Column(Boolean, default=True, index=True)
    triggers          = Column(JSON, nullable=False, default=list)
    logic_mode        = Column(String, default="AND")
    active_hours_start = Column(String, nullable=True)             # "HH:MM", lokale Zeit
    active_hours_end   = Column(String, nullable=True)
    timezone          = Column(String, default="America/Vancouver")
    cooldown_hours    = Column(Float, default=12)
    last_triggered_at = Column(DateTime, nullable=True)            # UTC
    created_at        = Column(DateTime, default=utcnow)
    updated_at        = Column(DateTime, default=utcnow, onupdate=utcnow)


class AlertHistory(Base):
    """
    Ein ausgelöster Alert inklusive Snapshot der Bedingungen (Audit).
    """

    __tablename__ = "alert_history"

    id               = Column(Integer, primary_key=True)
    profile_id       = Column(String, index=True, nullable=False)
    profile_name     = Column(String, nullable=True)
    triggered_at     = Column(DateTime, default=utcnow, index=True)
    matched_triggers = Column(JSON, nullable=False, default=list)
    snapshot         = Column(JSON, nullable=True)
    fishing_score    = Column(Float, nullable=True)
    detail           = Column(String, nullable=True)


class AlertRun(Base):
    """
    Protokolliert ausgeführte Alert-Läufe (z. B. Scheduler).
    """

    __tablename__ = "alert_runs"

    id                 = Column(Integer, primary_key=True)
    started_at         = Column(DateTime, default=utcnow, nullable=False)
    finished_at        = Column(DateTime, nullable=True)
    profiles_processed = Column(Integer, default=0)
    alerts_fired       = Column(Integer, default=0)
    skipped            = Column(Integer, default=0)
    errors             = Column(Integer, default=0)
    cancelled          = Column(Boolean, default=False)
    note               = Column(String, nullable=True)
