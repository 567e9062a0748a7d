"""Exception hierarchy for bacmap.

Validation, not-found and state-conflict errors are raised straight to the
caller. Persistence errors are the only failures the orchestrator lets escape
from its scoring path.
"""

from __future__ import annotations


class BacmapError(Exception):
    """Base class for all bacmap errors."""

    pass


class ConfigurationError(BacmapError):
    """Configuration or rule file is invalid or missing."""

    pass


class InputValidationError(BacmapError):
    """Caller supplied malformed input (missing ids, non-boolean flags)."""

    pass


class NotFoundError(BacmapError):
    """Equipment, signature or assignment does not exist."""

    def __init__(self, resource: str, identifier: str) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class StateConflictError(BacmapError):
    """Operation is not valid for the current state of the record."""

    pass


class PersistenceError(BacmapError):
    """Repository failed to durably record or read state."""

    pass
