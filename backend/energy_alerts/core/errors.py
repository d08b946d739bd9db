"""Error taxonomy for alert rule evaluation.

Per-rule errors (``NotFoundError``, ``InvalidRuleError``,
``TransientStoreError``) are recorded against the rule that raised them and
never stop the rest of a batch. ``BatchFailure`` aborts the current tick only.
"""

from uuid import UUID


class AlertEngineError(Exception):
    """Base class for alert engine errors."""


class NotFoundError(AlertEngineError):
    """A referenced rule, scope, or triggered alert does not exist."""

    def __init__(self, resource: str, resource_id: UUID | str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")


class InvalidRuleError(AlertEngineError):
    """A rule violates its construction invariants (scope or limit)."""


class TransientStoreError(AlertEngineError):
    """A store operation failed in a way that may succeed on retry."""


class BatchFailure(AlertEngineError):
    """The batch could not start, e.g. listing enabled rules failed."""
