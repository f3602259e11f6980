"""
Venue merge engine

Folds a source venue into a target venue inside one transaction:

1. load both venues
2. repoint every dependent row (events, public events, groups, cached
   images, earlier merge audits) from source to target
3. layer the source's provider_ids over the target's
4. drop exclusions that mention the source
5. write one VenueMergeAudit with a snapshot of the source
6. delete the source

Any failure rolls the whole transaction back and is raised as a
MergeException naming the failed step.
"""
from typing import Dict, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ValidationError
from core.logging import get_logger
from database.models import CachedImage, Event, Group, PublicEvent, Venue, VenueDuplicateExclusion, VenueMergeAudit
from venues.exceptions import ConstraintViolationException, MergeException
from venues.types import MergeResult
from venues.validation import validate_identity, validate_non_negative, validate_similarity

# (count key, model) for tables holding a plain venue_id foreign key
VENUE_REFERENCES = (
    ("events", Event),
    ("public_events", PublicEvent),
    ("groups", Group),
)

IMAGE_ENTITY_TYPE = "venue"


class VenueMerger:
    """Transactional source -> target venue merge"""

    def __init__(self, session: Session):
        self.session = session
        self.logger = get_logger("venue_merger", domain="venues")

    def merge(
        self,
        source_venue_id: int,
        target_venue_id: int,
        user_id: Optional[int] = None,
        reason: str = "manual",
        similarity_score: Optional[float] = None,
        distance_meters: Optional[float] = None,
    ) -> MergeResult:
        """
        Merge source into target and delete source

        Raises:
            ValidationError: malformed ids, source == target, bad provenance values
            NotFoundError: either venue is missing (including an already merged source)
            ConstraintViolationException: a step broke a database constraint
            MergeException: any other step failure
        """
        validate_identity(source_venue_id, "source_venue_id")
        validate_identity(target_venue_id, "target_venue_id")
        if source_venue_id == target_venue_id:
            raise ValidationError("Cannot merge a venue into itself", field="target_venue_id")
        if user_id is not None:
            validate_identity(user_id, "user_id")
        if similarity_score is not None:
            validate_similarity(similarity_score, "similarity_score")
        if distance_meters is not None:
            validate_non_negative(distance_meters, "distance_meters")

        step = "load_venues"
        try:
            source, target = self._load_venues(source_venue_id, target_venue_id)

            step = "reassign_entities"
            counts = self._reassign_entities(source_venue_id, target_venue_id)

            step = "merge_provider_ids"
            self._merge_provider_ids(source, target)

            step = "drop_exclusions"
            counts["exclusions_dropped"] = self._drop_exclusions(source_venue_id)

            step = "create_audit_record"
            audit = self._create_audit_record(
                source, target, counts, user_id, reason, similarity_score, distance_meters
            )

            step = "delete_source"
            self._delete_source(source)

            step = "commit"
            self.session.commit()

        except NotFoundError:
            self.session.rollback()
            raise
        except IntegrityError as e:
            self.session.rollback()
            self.logger.error(f"Merge {source_venue_id} -> {target_venue_id} violated a constraint at {step}: {e}")
            raise ConstraintViolationException(step, source_venue_id, target_venue_id, e) from e
        except Exception as e:
            self.session.rollback()
            self.logger.error(f"Merge {source_venue_id} -> {target_venue_id} failed at {step}: {e}")
            raise MergeException(step, source_venue_id, target_venue_id, e) from e

        self.session.refresh(target)
        self.logger.info(
            f"Merged venue {source_venue_id} into {target_venue_id}",
            extra={
                "source_venue_id": source_venue_id,
                "target_venue_id": target_venue_id,
                "audit_id": audit.id,
                **counts,
            },
        )
        return MergeResult(target_venue=target, audit=audit, counts=counts)

    def _load_venues(self, source_venue_id: int, target_venue_id: int) -> Tuple[Venue, Venue]:
        # Re-read and lock both rows; the identity map may hold venues another
        # transaction already merged away
        source = self._lock_venue(source_venue_id)
        if source is None:
            raise NotFoundError("Venue", source_venue_id)
        target = self._lock_venue(target_venue_id)
        if target is None:
            raise NotFoundError("Venue", target_venue_id)
        return source, target

    def _lock_venue(self, venue_id: int) -> Optional[Venue]:
        return self.session.get(Venue, venue_id, populate_existing=True, with_for_update=True)

    def _reassign_entities(self, source_venue_id: int, target_venue_id: int) -> Dict[str, int]:
        counts = {}
        for key, model in VENUE_REFERENCES:
            counts[key] = (
                self.session.query(model)
                .filter(model.venue_id == source_venue_id)
                .update({model.venue_id: target_venue_id}, synchronize_session="fetch")
            )

        counts["images"] = (
            self.session.query(CachedImage)
            .filter(CachedImage.entity_type == IMAGE_ENTITY_TYPE, CachedImage.entity_id == source_venue_id)
            .update({CachedImage.entity_id: target_venue_id}, synchronize_session="fetch")
        )

        # History of venues previously folded into the source follows it
        counts["merge_audits"] = (
            self.session.query(VenueMergeAudit)
            .filter(VenueMergeAudit.target_venue_id == source_venue_id)
            .update({VenueMergeAudit.target_venue_id: target_venue_id}, synchronize_session="fetch")
        )
        return counts

    def _merge_provider_ids(self, source: Venue, target: Venue) -> None:
        """Target is the base; source keys win on collision"""
        merged = {**(target.provider_ids or {}), **(source.provider_ids or {})}
        target.provider_ids = merged
        self.session.flush()

    def _drop_exclusions(self, source_venue_id: int) -> int:
        return (
            self.session.query(VenueDuplicateExclusion)
            .filter(
                or_(
                    VenueDuplicateExclusion.venue_id_1 == source_venue_id,
                    VenueDuplicateExclusion.venue_id_2 == source_venue_id,
                )
            )
            .delete(synchronize_session="fetch")
        )

    def _create_audit_record(
        self,
        source: Venue,
        target: Venue,
        counts: Dict[str, int],
        user_id: Optional[int],
        reason: Optional[str],
        similarity_score: Optional[float],
        distance_meters: Optional[float],
    ) -> VenueMergeAudit:
        audit = VenueMergeAudit(
            source_venue_id=source.id,
            target_venue_id=target.id,
            merged_by_user_id=user_id,
            merge_reason=reason or "manual",
            similarity_score=similarity_score,
            distance_meters=distance_meters,
            events_reassigned=counts.get("events", 0),
            public_events_reassigned=counts.get("public_events", 0),
            groups_reassigned=counts.get("groups", 0),
            images_reassigned=counts.get("images", 0),
            source_venue_snapshot=VenueMergeAudit.venue_snapshot(source),
        )
        self.session.add(audit)
        self.session.flush()
        return audit

    def _delete_source(self, source: Venue) -> None:
        deleted = self.session.query(Venue).filter(Venue.id == source.id).delete(synchronize_session="fetch")
        if deleted == 0:
            raise NotFoundError("Venue", source.id)


def merge_venues(session: Session, source_venue_id: int, target_venue_id: int, **kwargs) -> MergeResult:
    """Convenience wrapper around VenueMerger.merge"""
    return VenueMerger(session).merge(source_venue_id, target_venue_id, **kwargs)
