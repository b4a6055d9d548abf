"""
Test Suite

Contains unit tests for the backend system.

Structure:
- tests/unit/: Tests for individual components (relay, feed, providers, routes)

Uses pytest with pytest-asyncio for testing async functionality.
"""
