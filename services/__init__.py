"""Service modules for the clinic visit tracker."""

__all__ = ["visit_tracker"]
