"""Errors raised around collision monitoring."""


class CollisionMonitorError(Exception):
    """Base collision monitoring exception."""


class ClassifierError(CollisionMonitorError):
    """Raised when the vision classifier cannot produce a verdict."""
