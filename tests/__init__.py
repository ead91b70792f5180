"""
REGSCOPE Test Suite
===================

Test organization:
- tests/unit/                    - Settings and logging
- tests/services/scope_metrics/  - Pipeline components (no database required)

Run tests:
    pytest                          # All tests
    pytest tests/services           # Pipeline tests only
"""
