"""
services/errors.py

Domain errors raised by the watch services. Routers map these onto
HTTPException; the sweep maps them onto ERROR outcomes.
"""

from typing import List, Optional


class WatchError(Exception):
    pass


class WatchValidationError(WatchError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def details(self) -> List[dict]:
        return [{"field": self.field or "", "message": self.message}]


class WatchNotFound(WatchError):
    def __init__(self, watch_id: str):
        super().__init__(f"Watch not found: {watch_id}")
        self.watch_id = watch_id


class StaleWatchError(WatchError):
    """The watch row changed between the trigger's read and its write."""

    def __init__(self, watch_id: str):
        super().__init__(f"Watch {watch_id} was updated concurrently")
        self.watch_id = watch_id


class SweepInProgress(WatchError):
    def __init__(self):
        super().__init__("A sweep is already running")
