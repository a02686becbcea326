"""Exception types raised by the mileage engine."""

from typing import Optional


class StateMilesError(Exception):
    """Base class for every error the engine raises on purpose."""


class ConfigurationError(StateMilesError):
    """Boundary data or run configuration is unusable. Aborts the run before any trip."""


class InputRowError(StateMilesError):
    """A trip or leg row cannot be processed. Fatal for that trip only."""

    def __init__(self, message: str, trip_id: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.trip_id = trip_id
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.trip_id is not None:
            context.append(f"trip {self.trip_id}")
        if self.stage is not None:
            context.append(f"stage {self.stage}")
        if context:
            return f"{message} ({', '.join(context)})"
        return message
