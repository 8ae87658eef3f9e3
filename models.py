# =======================================
# SECTION: IMPORTS AND BASE
# =======================================

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)

from db import Base


# =======================================
# SECTION: WATCH MODEL
# =======================================

class Watch(Base):
    __tablename__ = "watches"

    id = Column(String(64), primary_key=True, index=True)
    user_id = Column(String(100), nullable=False, index=True, default="anon")

    origin = Column(String(8), nullable=False)
    destination = Column(String(8), nullable=False)
    cabin = Column(String(20), nullable=False, default="ECONOMY")

    adults = Column(Integer, nullable=False, default=1)
    children = Column(Integer, nullable=False, default=0)
    infants = Column(Integer, nullable=False, default=0)

    # oneway | roundtrip
    trip_type = Column(String(16), nullable=False, default="roundtrip")

    start = Column(Date, nullable=False)
    end = Column(Date, nullable=False)
    flex_days = Column(Integer, nullable=False, default=0)

    currency = Column(String(3), nullable=False, default="USD")
    target_usd = Column(Float, nullable=False)
    max_stops = Column(Integer, nullable=False, default=1)

    # email | sms | both
    channel = Column(String(8), nullable=False, default="email")
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)

    active = Column(Boolean, nullable=False, default=True)

    # Price state, written only by the trigger engine
    last_best_usd = Column(Float, nullable=True)
    last_notified_usd = Column(Float, nullable=True)
    last_checked = Column(DateTime, nullable=True)

    # Summary of the offer behind last_best_usd
    last_provider = Column(String(32), nullable=True)
    last_carrier = Column(String(8), nullable=True)
    last_depart = Column(Date, nullable=True)
    last_return = Column(Date, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# =======================================
# SECTION: ALERT LOG MODEL
# =======================================

class WatchAlert(Base):
    __tablename__ = "watch_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    watch_id = Column(String(64), ForeignKey("watches.id", ondelete="CASCADE"), nullable=False, index=True)

    old_price = Column(Float, nullable=True)
    new_price = Column(Float, nullable=False)
    delta = Column(Float, nullable=True)

    carrier = Column(String(8), nullable=True)
    depart = Column(Date, nullable=True)
    return_date = Column(Date, nullable=True)

    sent = Column(Boolean, nullable=False, default=False)
    message_id = Column(String(255), nullable=True)
    provider = Column(String(32), nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
