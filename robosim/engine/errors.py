from __future__ import annotations


class SimError(Exception):
    """Base class for user-visible simulation errors."""

    kind = "Error"

    def __init__(self, message: str, line: int | None = None):
        super().__init__(message)
        self.message = message
        self.line = line

    def describe(self) -> str:
        where = f" (Line {self.line})" if self.line is not None else ""
        return f"{self.kind}{where}: {self.message}"


class ValidationError(SimError):
    """Script rejected before execution started."""

    kind = "Syntax Error"


class RuntimeFault(SimError):
    """Script fault raised while stepping; the run is torn down."""

    kind = "Runtime Error"


class CollisionFault(SimError):
    kind = "Collision Error"


class ConfigError(SimError):
    """Bad sensor/robot configuration input; handled with a safe fallback."""

    kind = "Config Error"
