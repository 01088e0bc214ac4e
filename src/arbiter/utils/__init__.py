"""Shared utilities for arbiter."""

from arbiter.utils.logging import DIAGNOSTIC_PREFIX, setup_child_logging, setup_logging

__all__ = ["DIAGNOSTIC_PREFIX", "setup_child_logging", "setup_logging"]
