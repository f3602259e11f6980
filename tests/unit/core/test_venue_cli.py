"""
Tests for the venuedup command-line interface
"""
import os
import subprocess
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine, inspect

from core.cli import cli
from database.models import Venue, VenueDuplicateExclusion, VenueMergeAudit

pytestmark = [pytest.mark.unit]

REPO_ROOT = Path(__file__).resolve().parents[3]


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, test_db):
    """Run a command against the test session"""

    def _invoke(*args, **kwargs):
        return runner.invoke(cli, list(args), obj={"session_factory": lambda: test_db}, **kwargs)

    return _invoke


@pytest.fixture
def catalog(venue_seeder):
    city = venue_seeder.city("New York")
    a = venue_seeder.venue("Blue Note", city, 40.0, -73.0)
    b = venue_seeder.venue("Blue Note Jazz Club", city, 40.00005, -73.00004)
    c = venue_seeder.venue("Jazz Club", city, 40.0001, -73.00008)
    venue_seeder.events(a, 2)
    return {"city": city.id, "a": a.id, "b": b.id, "c": c.id}


class TestDetectionCommands:
    def test_find_duplicates(self, invoke, catalog):
        result = invoke("find-duplicates", str(catalog["a"]))

        assert result.exit_code == 0, result.output
        assert "Blue Note Jazz Club" in result.output
        assert "similarity 0.50" in result.output
        assert "confidence 0.65" in result.output

    def test_find_duplicates_none(self, invoke, venue_seeder):
        city = venue_seeder.city("Hudson")
        lonely = venue_seeder.venue("Lonely Barn", city, 42.0, -74.0)

        result = invoke("find-duplicates", str(lonely.id))

        assert result.exit_code == 0
        assert f"No duplicates found for venue {lonely.id}" in result.output

    def test_unknown_venue_is_reported(self, invoke):
        result = invoke("find-duplicates", "9999")

        assert result.exit_code == 1
        assert "Error: Venue not found: 9999" in result.output

    def test_pairs(self, invoke, catalog):
        result = invoke("pairs", str(catalog["city"]))

        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert len(lines) == 2
        assert all("(medium)" in line for line in lines)

    def test_pairs_with_small_radius(self, invoke, catalog):
        result = invoke("pairs", str(catalog["city"]), "--distance", "3")

        assert result.exit_code == 0
        assert "No duplicate pairs found" in result.output

    def test_groups(self, invoke, catalog):
        result = invoke("groups", str(catalog["city"]))

        assert result.exit_code == 0, result.output
        assert "Group 1: 3 venues, confidence 0.50" in result.output
        assert "events 2" in result.output

    def test_metrics(self, invoke, catalog):
        result = invoke("metrics", str(catalog["city"]))

        assert result.exit_code == 0, result.output
        assert "Severity: healthy" in result.output
        assert "Pairs: 2" in result.output
        assert "Unique venues: 3" in result.output
        assert "Confidence: 0 high, 2 medium, 0 low" in result.output

    def test_unknown_city(self, invoke, catalog):
        result = invoke("metrics", "424242")

        assert result.exit_code == 1
        assert "City not found: 424242" in result.output

    def test_duplicate_counts(self, invoke, catalog):
        result = invoke("duplicate-counts", str(catalog["a"]), str(catalog["b"]))

        assert result.exit_code == 0, result.output
        assert f"{catalog['a']}\t1" in result.output
        assert f"{catalog['b']}\t2" in result.output

    def test_search(self, invoke, catalog):
        result = invoke("search", "jazz")

        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert [line.split("\t")[1] for line in lines] == ["Blue Note Jazz Club", "Jazz Club"]


class TestMutationCommands:
    def test_merge_with_confirmation_flag(self, invoke, catalog, test_db):
        result = invoke("merge", str(catalog["a"]), str(catalog["b"]), "--yes", "--reason", "duplicate_detection")

        assert result.exit_code == 0, result.output
        assert f"Merged venue {catalog['a']} into {catalog['b']}" in result.output
        assert "Reassigned: 2 events" in result.output
        assert test_db.get(Venue, catalog["a"]) is None
        assert test_db.query(VenueMergeAudit).one().merge_reason == "duplicate_detection"

    def test_merge_declined(self, invoke, catalog, test_db):
        result = invoke("merge", str(catalog["a"]), str(catalog["b"]), input="n\n")

        assert result.exit_code == 1
        assert test_db.get(Venue, catalog["a"]) is not None
        assert test_db.query(VenueMergeAudit).count() == 0

    def test_merge_into_self(self, invoke, catalog):
        result = invoke("merge", str(catalog["a"]), str(catalog["a"]), "--yes")

        assert result.exit_code == 1
        assert "Cannot merge a venue into itself" in result.output

    def test_history(self, invoke, catalog):
        invoke("merge", str(catalog["a"]), str(catalog["b"]), "--yes")

        result = invoke("history", str(catalog["b"]))

        assert result.exit_code == 0, result.output
        assert f"{catalog['a']} 'Blue Note' -> {catalog['b']}" in result.output

    def test_history_empty(self, invoke, catalog):
        result = invoke("history", str(catalog["c"]))

        assert f"No merges recorded for venue {catalog['c']}" in result.output

    def test_exclude_and_unexclude(self, invoke, catalog, test_db):
        excluded = invoke("exclude", str(catalog["b"]), str(catalog["a"]), "--reason", "Different rooms")

        assert excluded.exit_code == 0, excluded.output
        assert f"Excluded pair {catalog['a']}-{catalog['b']}" in excluded.output
        assert test_db.query(VenueDuplicateExclusion).count() == 1

        again = invoke("exclude", str(catalog["a"]), str(catalog["b"]))
        assert again.exit_code == 1
        assert "already exists" in again.output

        removed = invoke("unexclude", str(catalog["a"]), str(catalog["b"]))
        assert removed.exit_code == 0
        assert f"Removed exclusion for {catalog['a']}-{catalog['b']}" in removed.output
        assert test_db.query(VenueDuplicateExclusion).count() == 0


class TestInfoCommands:
    def test_env_info(self, invoke):
        result = invoke("env-info")

        assert result.exit_code == 0
        assert "VenueCatalog" in result.output
        assert "Spatial provider:" in result.output

    def test_version(self, invoke):
        result = invoke("--version")

        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestInitDb:
    @pytest.mark.slow
    def test_creates_every_table_in_a_fresh_process(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'catalog.db'}"
        env = {**os.environ, "ENVIRONMENT": "test", "DATABASE_URL": url}

        completed = subprocess.run(
            [sys.executable, "-c", "from core.cli import cli; cli(['init-db'])"],
            cwd=REPO_ROOT,
            env=env,
            capture_output=True,
            text=True,
            timeout=120,
        )

        assert completed.returncode == 0, completed.stderr
        assert "Database initialized successfully!" in completed.stdout
        engine = create_engine(url)
        try:
            tables = set(inspect(engine).get_table_names())
        finally:
            engine.dispose()
        assert {
            "cities",
            "users",
            "venues",
            "events",
            "public_events",
            "groups",
            "cached_images",
            "venue_duplicate_exclusions",
            "venue_merge_audits",
        } <= tables
