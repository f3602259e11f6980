"""
Database models for the venue catalog

Venues are owned by the catalog. Events, public events, groups and cached
images hold references to venues and are reassigned when venues merge.
Exclusions and merge audits are written by the deduplication engine.
"""

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database.base import Base, JSONType


class City(Base):
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    country_code = Column(String(2))
    latitude = Column(Float)
    longitude = Column(Float)
    created_at = Column(TIMESTAMP, server_default=func.now())

    venues = relationship("Venue", back_populates="city")

    def __repr__(self):
        return f"<City(id={self.id}, slug='{self.slug}')>"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255))
    created_at = Column(TIMESTAMP, server_default=func.now())


class Venue(Base):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    address = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    city_id = Column(Integer, ForeignKey("cities.id"), index=True)
    slug = Column(String(255), unique=True)
    venue_type = Column(String(50), default="venue")
    source = Column(String(50))

    # External provider name -> provider-specific venue key
    provider_ids = Column(JSONType, nullable=False, default=dict)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    city = relationship("City", back_populates="venues")

    __table_args__ = (Index("idx_venues_city_coordinates", "city_id", "latitude", "longitude"),)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __repr__(self):
        return f"<Venue(id={self.id}, name='{self.name}', city_id={self.city_id})>"


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id"), index=True)
    starts_at = Column(TIMESTAMP)
    created_at = Column(TIMESTAMP, server_default=func.now())


class PublicEvent(Base):
    __tablename__ = "public_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id"), index=True)
    starts_at = Column(TIMESTAMP)
    created_at = Column(TIMESTAMP, server_default=func.now())


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id"), index=True)
    created_at = Column(TIMESTAMP, server_default=func.now())


class CachedImage(Base):
    """Image cache rows keyed polymorphically by entity type and id"""

    __tablename__ = "cached_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False)
    url = Column(String(1000), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    __table_args__ = (Index("idx_cached_images_entity", "entity_type", "entity_id"),)


class VenueDuplicateExclusion(Base):
    """A venue pair marked as "not duplicates", stored smaller id first"""

    __tablename__ = "venue_duplicate_exclusions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    venue_id_1 = Column(Integer, ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    venue_id_2 = Column(Integer, ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    excluded_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    reason = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())

    excluded_by_user = relationship("User")

    __table_args__ = (
        UniqueConstraint("venue_id_1", "venue_id_2", name="uq_venue_duplicate_exclusions_pair"),
        CheckConstraint("venue_id_1 < venue_id_2", name="ck_venue_duplicate_exclusions_order"),
        Index("idx_venue_duplicate_exclusions_venue_2", "venue_id_2"),
    )

    @staticmethod
    def normalize_pair(venue_id_1: int, venue_id_2: int) -> tuple:
        if venue_id_1 <= venue_id_2:
            return venue_id_1, venue_id_2
        return venue_id_2, venue_id_1

    def partner_of(self, venue_id: int) -> int:
        return self.venue_id_2 if self.venue_id_1 == venue_id else self.venue_id_1

    def __repr__(self):
        return f"<VenueDuplicateExclusion({self.venue_id_1}, {self.venue_id_2})>"


class VenueMergeAudit(Base):
    """Append-only record of a venue merge; the only trace of the deleted source"""

    __tablename__ = "venue_merge_audits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_venue_id = Column(Integer, nullable=False, index=True)
    target_venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    merged_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    merge_reason = Column(Text, nullable=False, default="manual")

    # Detection provenance, empty for manual merges
    similarity_score = Column(Float)
    distance_meters = Column(Float)

    events_reassigned = Column(Integer, nullable=False, default=0)
    public_events_reassigned = Column(Integer, nullable=False, default=0)
    groups_reassigned = Column(Integer, nullable=False, default=0)
    images_reassigned = Column(Integer, nullable=False, default=0)

    source_venue_snapshot = Column(JSONType, nullable=False)
    inserted_at = Column(TIMESTAMP, server_default=func.now())

    target_venue = relationship("Venue")
    merged_by_user = relationship("User")

    __table_args__ = (
        CheckConstraint("source_venue_id <> target_venue_id", name="ck_venue_merge_audits_distinct"),
        Index("idx_venue_merge_audits_inserted", "inserted_at"),
    )

    @staticmethod
    def venue_snapshot(venue: Venue) -> dict:
        """Full attribute copy of a venue, JSON-safe"""
        return {
            "id": venue.id,
            "name": venue.name,
            "address": venue.address,
            "latitude": venue.latitude,
            "longitude": venue.longitude,
            "city_id": venue.city_id,
            "slug": venue.slug,
            "venue_type": venue.venue_type,
            "source": venue.source,
            "provider_ids": dict(venue.provider_ids or {}),
            "created_at": venue.created_at.isoformat() if venue.created_at else None,
            "updated_at": venue.updated_at.isoformat() if venue.updated_at else None,
        }

    def __repr__(self):
        return f"<VenueMergeAudit(id={self.id}, source={self.source_venue_id}, target={self.target_venue_id})>"
