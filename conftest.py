"""
Root pytest hooks: marker registration, directory-based markers and the
optional --validate-markers report
"""
import pytest

from tests.markers import DOMAIN_MARKERS, MarkerValidator, apply_auto_markers, generate_marker_report

LEVEL_MARKERS = {
    "unit": "Fast tests against in-memory SQLite",
    "integration": "Tests running several engine components together",
    "slow": "Tests that take longer than a second",
}


def pytest_configure(config):
    for name, description in {**LEVEL_MARKERS, **DOMAIN_MARKERS}.items():
        config.addinivalue_line("markers", f"{name}: {description}")


def pytest_addoption(parser):
    parser.addoption(
        "--validate-markers",
        action="store_true",
        default=False,
        help="Report marker usage and fail on missing or unknown markers",
    )


def pytest_collection_modifyitems(config, items):
    for item in items:
        apply_auto_markers(item)


def pytest_sessionfinish(session, exitstatus):
    if not session.config.getoption("--validate-markers", default=False):
        return

    items = getattr(session, "items", [])
    if not items:
        return

    print("\n" + generate_marker_report(items))

    validator = MarkerValidator()
    if exitstatus == 0 and any(validator.validate_item(item)[0] for item in items):
        session.exitstatus = 1
