"""
Custom exception hierarchy for the landcell system.

Expected physical-limit failures inside a time step (stage inversion,
resistance failure, solver failure) are reported through
``landcell.core.types.Result`` instead. The exceptions below are for
configuration faults and invariant violations that end a run.
"""
from typing import Optional, Any, Dict
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Context information for errors"""
    cell_id: Optional[str] = None
    record: Optional[int] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class LandcellError(Exception):
    """Base exception for all landcell errors"""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        context_str = ""
        if self.context.cell_id:
            context_str += f" [Cell: {self.context.cell_id}]"
        if self.context.record is not None:
            context_str += f" [Record: {self.context.record}]"
        if self.context.component:
            context_str += f" [Component: {self.context.component}]"

        return f"{self.__class__.__name__}: {self.message}{context_str}"


# Physics model errors
class PhysicsModelError(LandcellError):
    """Base class for physics model errors"""
    pass


class ParameterError(PhysicsModelError):
    """Invalid model parameters; fatal for the run"""
    pass


# Configuration errors
class ConfigurationError(LandcellError):
    """Configuration error"""
    pass


class StateFileError(ConfigurationError):
    """Model state file does not match the run configuration"""
    pass


def handle_exception(exc: Exception, context: Optional[ErrorContext] = None) -> LandcellError:
    """
    Wrap generic exceptions in the LandcellError hierarchy.
    """
    if isinstance(exc, LandcellError):
        return exc

    error_map = {
        FileNotFoundError: StateFileError,
        ValueError: ParameterError,
        KeyError: ConfigurationError,
        ArithmeticError: PhysicsModelError,
    }

    for exc_type, landcell_exc_type in error_map.items():
        if isinstance(exc, exc_type):
            return landcell_exc_type(str(exc), context)

    return LandcellError(str(exc), context)
