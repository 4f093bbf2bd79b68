# app/db/models.py
# -----------------------------------------------------------------------------
# ORM models
# - PoiQuery / CachedPoi: cached POI searches (one query row, many POIs)
# - AnalysisLog: history of full analyses
# -----------------------------------------------------------------------------
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String

from app.db.session import Base


def utcnow() -> datetime:
    # SQLite keeps naive datetimes, so store naive UTC everywhere
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PoiQuery(Base):
    __tablename__ = "poi_queries"

    id = Column(Integer, primary_key=True)
    cache_key = Column(String, unique=True, index=True, nullable=False)
    business_type = Column(String, index=True)
    lat = Column(Float)
    lng = Column(Float)
    radius_km = Column(Float)
    language = Column(String)
    partial = Column(Boolean, default=False)
    warning = Column(String, nullable=True)
    fetched_at = Column(DateTime, default=utcnow, index=True)


class CachedPoi(Base):
    __tablename__ = "cached_pois"

    id = Column(Integer, primary_key=True)
    query_id = Column(Integer, ForeignKey("poi_queries.id", ondelete="CASCADE"), index=True)
    poi_id = Column(String, nullable=True)
    name = Column(String, nullable=True)
    category = Column(String, nullable=True, index=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    distance_m = Column(Float, default=0.0)
    kind = Column(String, nullable=False)  # "competitor" | "complement"

    __table_args__ = (Index("ix_cached_pois_lat_lng", "lat", "lng"),)


class AnalysisLog(Base):
    __tablename__ = "analysis_logs"

    id = Column(Integer, primary_key=True)
    business_type = Column(String, index=True)
    lat = Column(Float)
    lng = Column(Float)
    radius_km = Column(Float)
    cells = Column(Integer, default=0)
    competitor_count = Column(Integer, default=0)
    complement_count = Column(Integer, default=0)
    status = Column(String)  # "done" | "empty" | "error:..."
    elapsed_ms = Column(Float, default=0.0)
    created_at = Column(DateTime, default=utcnow, index=True)
