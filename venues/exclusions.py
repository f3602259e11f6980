"""
Exclusion registry

Persistent "not a duplicate" markers. Every operation normalizes the pair to
smaller id first, so callers may pass ids in any order.
"""
from typing import Iterable, List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import DatabaseError, DuplicateError, NotFoundError, ValidationError
from core.logging import get_logger
from database.models import User, Venue, VenueDuplicateExclusion
from venues.types import PairKey, canonical_pair
from venues.validation import validate_identity


class ExclusionRegistry:
    def __init__(self, session: Session):
        self.session = session
        self.logger = get_logger("venue_exclusions", domain="venues")

    def _normalize(self, venue_id_a: int, venue_id_b: int) -> PairKey:
        validate_identity(venue_id_a, "venue_id_a")
        validate_identity(venue_id_b, "venue_id_b")
        if venue_id_a == venue_id_b:
            raise ValidationError("A venue cannot be excluded from itself", field="venue_id_b", venue_id=venue_id_a)
        return canonical_pair(venue_id_a, venue_id_b)

    def _find(self, key: PairKey) -> Optional[VenueDuplicateExclusion]:
        return (
            self.session.query(VenueDuplicateExclusion)
            .filter(
                VenueDuplicateExclusion.venue_id_1 == key[0],
                VenueDuplicateExclusion.venue_id_2 == key[1],
            )
            .first()
        )

    def exclude(
        self,
        venue_id_a: int,
        venue_id_b: int,
        user_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> VenueDuplicateExclusion:
        """
        Mark two venues as "not duplicates"

        Raises:
            NotFoundError: either venue (or the acting user) does not exist
            DuplicateError: the pair is already excluded
        """
        key = self._normalize(venue_id_a, venue_id_b)

        for venue_id in key:
            if self.session.get(Venue, venue_id) is None:
                raise NotFoundError("Venue", venue_id)
        if user_id is not None and self.session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        if self._find(key) is not None:
            raise DuplicateError("Venue exclusion", f"{key[0]}-{key[1]}")

        exclusion = VenueDuplicateExclusion(
            venue_id_1=key[0],
            venue_id_2=key[1],
            excluded_by_user_id=user_id,
            reason=reason,
        )
        try:
            self.session.add(exclusion)
            self.session.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent exclusion of the same pair
            self.session.rollback()
            raise DuplicateError("Venue exclusion", f"{key[0]}-{key[1]}") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to save exclusion: {e}", operation="exclude") from e

        self.session.refresh(exclusion)
        self.logger.info(
            f"Excluded venue pair {key[0]}-{key[1]} from duplicate detection",
            extra={"venue_id_1": key[0], "venue_id_2": key[1], "user_id": user_id},
        )
        return exclusion

    def is_excluded(self, venue_id_a: int, venue_id_b: int) -> bool:
        return self._find(self._normalize(venue_id_a, venue_id_b)) is not None

    def excluded_partners(self, venue_id: int) -> List[int]:
        """Ids of every venue excluded against venue_id, ascending"""
        validate_identity(venue_id)
        rows = (
            self.session.query(VenueDuplicateExclusion)
            .filter(
                or_(
                    VenueDuplicateExclusion.venue_id_1 == venue_id,
                    VenueDuplicateExclusion.venue_id_2 == venue_id,
                )
            )
            .all()
        )
        return sorted(row.partner_of(venue_id) for row in rows)

    def excluded_pairs(self, venue_ids: Optional[Iterable[int]] = None) -> Set[PairKey]:
        """
        Canonical keys of excluded pairs touching venue_ids, in one query.

        With venue_ids None every exclusion is returned.
        """
        query = self.session.query(VenueDuplicateExclusion.venue_id_1, VenueDuplicateExclusion.venue_id_2)
        if venue_ids is not None:
            ids = list(set(venue_ids))
            if not ids:
                return set()
            query = query.filter(
                or_(
                    VenueDuplicateExclusion.venue_id_1.in_(ids),
                    VenueDuplicateExclusion.venue_id_2.in_(ids),
                )
            )
        return {(row[0], row[1]) for row in query.all()}

    def remove_exclusion(self, venue_id_a: int, venue_id_b: int) -> None:
        """Raises NotFoundError when the pair is not excluded"""
        key = self._normalize(venue_id_a, venue_id_b)
        exclusion = self._find(key)
        if exclusion is None:
            raise NotFoundError("Venue exclusion", f"{key[0]}-{key[1]}")

        try:
            self.session.delete(exclusion)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to remove exclusion: {e}", operation="remove_exclusion") from e

        self.logger.info(f"Removed exclusion for venue pair {key[0]}-{key[1]}")
