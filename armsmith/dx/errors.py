"""Error types raised by Armsmith."""

from typing import Any, Dict, List, Optional


class ArmsmithError(Exception):
    """Base class for Armsmith errors."""


class InvalidConfigurationError(ArmsmithError, ValueError):
    """Experiment configuration rejected at definition time."""

    def __init__(
        self,
        message: str,
        field_errors: Optional[Dict[str, List[str]]] = None,
        experiment: Optional[str] = None,
    ):
        """
        Initialize configuration error.

        Args:
            message: Error message
            field_errors: Dictionary mapping field names to error messages
            experiment: Optional name of the experiment being configured
        """
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors or {}
        self.experiment = experiment

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "error_type": "InvalidConfiguration",
            "message": self.message,
            "experiment": self.experiment,
            "field_errors": self.field_errors,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.experiment:
            parts.append(f"Experiment: {self.experiment}")
        for field_name, errors in self.field_errors.items():
            for error in errors:
                parts.append(f"  - {field_name}: {error}")
        return "\n".join(parts)


class UnknownExperimentError(ArmsmithError, KeyError):
    """Raised when an experiment name has not been registered."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown experiment: {self.name}"
