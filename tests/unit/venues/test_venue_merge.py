"""
Tests for the transactional venue merge
"""
from unittest.mock import patch

import pytest
from sqlalchemy import text

from core.exceptions import NotFoundError, ValidationError
from database.models import CachedImage, Event, Group, PublicEvent, Venue, VenueDuplicateExclusion, VenueMergeAudit
from venues.exceptions import ConstraintViolationException, MergeException
from venues.merge import VenueMerger, merge_venues


@pytest.fixture
def merger(test_db):
    return VenueMerger(test_db)


@pytest.fixture
def populated(venue_seeder, blue_note_venues):
    """Blue Note (source) with references, Blue Note Jazz Club (target)"""
    source, target, _ = blue_note_venues
    venue_seeder.events(source, 3)
    venue_seeder.events(target, 2)
    venue_seeder.public_events(source, 1)
    venue_seeder.group(source)
    venue_seeder.image(source)
    venue_seeder.image(source, entity_type="artist")
    return source.id, target.id


class TestVenueMerge:
    def test_references_follow_the_target(self, merger, populated, test_db):
        source_id, target_id = populated

        result = merger.merge(source_id, target_id)

        assert result.counts["events"] == 3
        assert result.counts["public_events"] == 1
        assert result.counts["groups"] == 1
        assert result.counts["images"] == 1
        assert test_db.query(Event).filter(Event.venue_id == target_id).count() == 5
        assert test_db.query(Event).filter(Event.venue_id == source_id).count() == 0
        assert test_db.query(PublicEvent).filter(PublicEvent.venue_id == target_id).count() == 1
        assert test_db.query(Group).filter(Group.venue_id == target_id).count() == 1

    def test_only_venue_images_are_repointed(self, merger, populated, test_db):
        source_id, target_id = populated

        merger.merge(source_id, target_id)

        images = {(img.entity_type, img.entity_id) for img in test_db.query(CachedImage).all()}
        assert images == {("venue", target_id), ("artist", source_id)}

    def test_source_is_deleted(self, merger, populated, test_db):
        source_id, target_id = populated

        result = merger.merge(source_id, target_id)

        assert test_db.get(Venue, source_id) is None
        assert result.target_venue.id == target_id

    def test_provider_ids_are_merged_source_wins(self, merger, venue_seeder, city, test_db):
        source = venue_seeder.venue("Apollo", city, provider_ids={"songkick": "sk-new", "ticketmaster": "tm-1"})
        target = venue_seeder.venue("Apollo Theater", city, provider_ids={"songkick": "sk-old", "bandsintown": "b-2"})

        result = merger.merge(source.id, target.id)

        assert result.target_venue.provider_ids == {
            "songkick": "sk-new",
            "ticketmaster": "tm-1",
            "bandsintown": "b-2",
        }

    def test_exactly_one_audit_record(self, merger, populated, venue_seeder, test_db):
        source_id, target_id = populated
        user = venue_seeder.user()

        result = merger.merge(
            source_id, target_id, user_id=user.id, reason="duplicate_detection", similarity_score=0.5, distance_meters=6.5
        )

        audits = test_db.query(VenueMergeAudit).all()
        assert len(audits) == 1
        audit = audits[0]
        assert audit.id == result.audit.id
        assert (audit.source_venue_id, audit.target_venue_id) == (source_id, target_id)
        assert audit.merged_by_user_id == user.id
        assert audit.merge_reason == "duplicate_detection"
        assert audit.similarity_score == 0.5
        assert audit.distance_meters == 6.5
        assert audit.events_reassigned == 3
        assert audit.public_events_reassigned == 1
        assert audit.groups_reassigned == 1
        assert audit.images_reassigned == 1

    def test_audit_snapshot_preserves_source(self, merger, populated, test_db):
        source_id, target_id = populated

        result = merger.merge(source_id, target_id)

        snapshot = result.audit.source_venue_snapshot
        assert snapshot["id"] == source_id
        assert snapshot["name"] == "Blue Note"
        assert snapshot["provider_ids"] == {"songkick": "sk-1"}
        assert snapshot["latitude"] == 40.0

    def test_manual_merge_defaults(self, merger, populated):
        source_id, target_id = populated

        audit = merger.merge(source_id, target_id).audit

        assert audit.merge_reason == "manual"
        assert audit.similarity_score is None
        assert audit.merged_by_user_id is None

    def test_exclusions_touching_source_are_dropped(self, merger, exclusions, blue_note_venues, test_db):
        a, b, c = blue_note_venues
        exclusions.exclude(a.id, c.id)
        exclusions.exclude(b.id, c.id)
        source_id, target_id = a.id, b.id

        result = merger.merge(source_id, target_id)

        assert result.counts["exclusions_dropped"] == 1
        remaining = [(e.venue_id_1, e.venue_id_2) for e in test_db.query(VenueDuplicateExclusion).all()]
        assert remaining == [(target_id, c.id)]

    def test_earlier_audits_follow_the_target(self, merger, venue_seeder, city, test_db):
        first = venue_seeder.venue("Webster Hall", city)
        second = venue_seeder.venue("Webster Hall NYC", city)
        third = venue_seeder.venue("The Webster Hall", city)
        first_id, second_id, third_id = first.id, second.id, third.id

        merger.merge(first_id, second_id)
        result = merger.merge(second_id, third_id)

        assert result.counts["merge_audits"] == 1
        targets = sorted(a.target_venue_id for a in test_db.query(VenueMergeAudit).all())
        assert targets == [third_id, third_id]

    def test_convenience_wrapper(self, populated, test_db):
        source_id, target_id = populated

        result = merge_venues(test_db, source_id, target_id, reason="cleanup")

        assert result.audit.merge_reason == "cleanup"


class TestVenueMergeFailures:
    def test_failed_step_rolls_back_everything(self, merger, populated, test_db):
        source_id, target_id = populated

        with patch.object(VenueMerger, "_merge_provider_ids", side_effect=RuntimeError("disk full")):
            with pytest.raises(MergeException) as exc_info:
                merger.merge(source_id, target_id)

        assert exc_info.value.step == "merge_provider_ids"
        assert isinstance(exc_info.value.original_error, RuntimeError)
        assert test_db.get(Venue, source_id) is not None
        assert test_db.query(Event).filter(Event.venue_id == source_id).count() == 3
        assert test_db.query(Event).filter(Event.venue_id == target_id).count() == 2
        assert test_db.query(VenueMergeAudit).count() == 0

    def test_merging_a_merged_source_is_not_found(self, merger, populated, test_db):
        source_id, target_id = populated
        merger.merge(source_id, target_id)

        with pytest.raises(NotFoundError):
            merger.merge(source_id, target_id)

        assert test_db.query(VenueMergeAudit).count() == 1

    def test_source_deleted_after_detection_is_not_found(self, deduplicator, blue_note_venues, city, test_db):
        _, target, source = blue_note_venues
        assert deduplicator.find_duplicate_pairs([city.id])

        # Gone from the table, still cached in the session
        test_db.execute(text("DELETE FROM venues WHERE id = :id"), {"id": source.id})

        with pytest.raises(NotFoundError):
            deduplicator.merge_venues(source.id, target.id)

        assert test_db.query(VenueMergeAudit).count() == 0

    def test_source_vanishing_mid_merge_is_not_found(self, merger, blue_note_venues, test_db):
        _, target, source = blue_note_venues
        source_id, target_id = source.id, target.id

        def delete_behind(source_venue_id, target_venue_id):
            test_db.execute(text("DELETE FROM venues WHERE id = :id"), {"id": source_venue_id})
            return {}

        with patch.object(VenueMerger, "_reassign_entities", side_effect=delete_behind):
            with pytest.raises(NotFoundError):
                merger.merge(source_id, target_id)

        assert test_db.query(VenueMergeAudit).count() == 0
        assert test_db.get(Venue, source_id) is not None

    def test_missing_target(self, merger, populated):
        source_id, _ = populated

        with pytest.raises(NotFoundError):
            merger.merge(source_id, 9999)

    def test_unknown_user_is_a_constraint_violation(self, merger, populated, test_db):
        source_id, target_id = populated

        with pytest.raises(ConstraintViolationException) as exc_info:
            merger.merge(source_id, target_id, user_id=4242)

        assert exc_info.value.step == "create_audit_record"
        assert exc_info.value.status_code == 409
        assert test_db.get(Venue, source_id) is not None
        assert test_db.query(Event).filter(Event.venue_id == source_id).count() == 3

    def test_merge_into_self_is_invalid(self, merger, populated):
        source_id, _ = populated

        with pytest.raises(ValidationError):
            merger.merge(source_id, source_id)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"similarity_score": 1.5},
            {"similarity_score": -0.1},
            {"distance_meters": -1.0},
            {"user_id": "admin"},
        ],
    )
    def test_invalid_provenance(self, merger, populated, kwargs):
        source_id, target_id = populated

        with pytest.raises(ValidationError):
            merger.merge(source_id, target_id, **kwargs)

    @pytest.mark.parametrize("bad_id", ["1", None, 0, 2.0])
    def test_malformed_ids(self, merger, bad_id):
        with pytest.raises(ValidationError):
            merger.merge(bad_id, 1)
