"""Test mocks for external services."""

from .ballchasing_mocks import MOCK_CALLER, MOCK_OTHER, MOCK_TOKEN, MockBallchasing, MockGroup, MockReplay

__all__ = ["MOCK_CALLER", "MOCK_OTHER", "MOCK_TOKEN", "MockBallchasing", "MockGroup", "MockReplay"]
