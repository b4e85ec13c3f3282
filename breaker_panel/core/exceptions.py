"""
Breaker Panel Exceptions

Planner failures are deterministic: retrying with the same snapshot raises the
same error. Only ConflictError (executor) is worth retrying, after replanning.
"""


class BreakerPanelError(Exception):
    """Base exception for the breaker panel helper."""

    pass


class PlannerError(BreakerPanelError):
    """Plan generation aborted before any move was built."""

    pass


class ConfigurationError(PlannerError):
    """Target or source panel missing, or both are the same panel."""

    pass


class CapacityError(PlannerError):
    """Target panel cannot physically hold the units to move."""

    def __init__(self, message: str, required: int = 0, available: int = 0):
        super().__init__(message)
        self.required = required
        self.available = available


class NoCriticalBreakersError(PlannerError):
    """Nothing flagged critical in the source panel."""

    pass


class ConflictError(BreakerPanelError):
    """A planned slot no longer holds what the plan assumed."""

    def __init__(self, message: str, panel_id: int | None = None, position: int | None = None,
                 slot_position: str | None = None):
        super().__init__(message)
        self.panel_id = panel_id
        self.position = position
        self.slot_position = slot_position


class UnresolvedMixedTandemWarning(UserWarning):
    """A mixed tandem could not be paired; only its critical half moves."""

    pass


class EntityNotFoundError(BreakerPanelError, LookupError):
    """A panel, breaker, room or circuit id that does not exist."""

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidReferenceError(BreakerPanelError, ValueError):
    """A foreign id in a request body points at nothing."""

    pass


class GeometryError(BreakerPanelError, ValueError):
    """A requested position does not fit the panel."""

    pass
