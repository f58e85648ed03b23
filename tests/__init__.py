"""
DoseKeeper Test Suite
=====================

This package contains all tests for the DoseKeeper dose adherence backend.

Test Structure:
- test_tools/: Schedule expansion and notification delivery
- test_actions/: Dose, adherence, achievement and reminder engines
- test_services/: Database-backed services against in-memory SQLite
- test_api/: API endpoint tests for FastAPI routes
- conftest.py: Shared pytest fixtures
- fakes.py: In-memory providers and a recording notifier

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_api/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "scheduler"
"""
