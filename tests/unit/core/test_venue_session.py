"""
Tests for session helpers and engine construction
"""
import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from database.models import City, Venue
from database.session import build_engine, get_db, session_scope

pytestmark = [pytest.mark.unit]


class TestSessionHelpers:
    def test_session_scope_commits(self, mock_production_db, test_db):
        with session_scope() as db:
            db.add(City(name="Austin", slug="austin"))

        assert test_db.query(City).filter(City.slug == "austin").count() == 1

    def test_session_scope_rolls_back(self, mock_production_db, test_db):
        with pytest.raises(RuntimeError):
            with session_scope() as db:
                db.add(City(name="Austin", slug="austin"))
                db.flush()
                raise RuntimeError("boom")

        assert test_db.query(City).count() == 0

    def test_get_db_yields_and_closes(self, mock_production_db, test_db):
        generator = get_db()

        assert next(generator) is test_db
        with pytest.raises(StopIteration):
            next(generator)


class TestEngine:
    def test_sqlite_enforces_foreign_keys(self):
        engine = build_engine("sqlite:///:memory:")

        with engine.connect() as connection:
            assert connection.execute(text("PRAGMA foreign_keys")).scalar() == 1

        engine.dispose()

    def test_fixture_rejects_dangling_city(self, test_db):
        test_db.add(Venue(name="Ghost", city_id=999, provider_ids={}))

        with pytest.raises(IntegrityError):
            test_db.commit()
        test_db.rollback()
