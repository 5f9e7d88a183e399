"""
Pytest configuration for the mklfs test suite.

The test modules live in tests/ and import the flat top-level modules
(flashdev, lfssession, ...).  This file sits at the repository root so
pytest puts the root on sys.path before collecting them.

    python -m pytest              # everything
    python -m pytest -m "not engine"   # skip tests that drive littlefs
"""


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "engine: tests that format and mount real littlefs images")
