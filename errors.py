class SchedulerError(Exception):
    """Base class for errors raised by the scheduling core."""


class NoClassesError(SchedulerError):
    def __init__(self, message: str = "No class data available. Please add your classes before generating a schedule."):
        super().__init__(message)


class SlotNotFoundError(SchedulerError):
    def __init__(self, slot_id: str):
        super().__init__(f"Study slot {slot_id} not found")
        self.slot_id = slot_id


class InvalidTransitionError(SchedulerError):
    """Raised when a slot is asked to move to a state it cannot reach."""


class StoreError(SchedulerError):
    """Persistent storage could not be read or written."""


class LLMProviderError(SchedulerError):
    """The text-completion provider failed, timed out or returned nothing."""


class PrimaryPathError(SchedulerError):
    """The generative path produced nothing usable; the caller should fall back."""
