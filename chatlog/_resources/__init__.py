"""Resource namespaces for the bridge client."""

from .tasks import Tasks

__all__ = ["Tasks"]
