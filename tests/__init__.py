"""Tests for Runner Fleet.

Test Structure:
    tests/
    ├── conftest.py          # Shared pytest fixtures
    ├── unit/                # Unit tests (no network, no root)
    │   ├── test_artifact_cache.py
    │   ├── test_cli.py
    │   ├── test_config.py
    │   ├── test_credentials.py
    │   ├── test_error_handling.py
    │   ├── test_models.py
    │   ├── test_orchestrator.py
    │   ├── test_preflight.py
    │   ├── test_reconciler.py
    │   └── test_script_controller.py
    └── mocks/               # Mock implementations
        └── mock_runner.py

Usage:
    # Run all tests
    pytest

    # Run only unit tests
    pytest -m unit

    # Run with verbose output
    pytest -v
"""
