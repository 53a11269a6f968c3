"""Developer-facing helpers: errors and diagnostics."""

from armsmith.dx.errors import ArmsmithError, InvalidConfigurationError, UnknownExperimentError

__all__ = [
    "ArmsmithError",
    "InvalidConfigurationError",
    "UnknownExperimentError",
]
