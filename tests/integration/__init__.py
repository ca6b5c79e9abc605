"""
Integration tests for the Courtside signal engine.

These tests verify that components work together correctly:
webhook intake, engine, record store repositories and alert delivery.
Only the record store API and outbound HTTP are mocked.

Run with:
    pytest tests/integration/ -v -m integration

Skip with:
    pytest -m "not integration"
"""
