"""
Model state file header check.

A plain-text state file starts with the date the state refers to and the
soil structure it was written for::

    year month day
    n_layers n_nodes
"""
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Union

from landcell.core.exceptions import ErrorContext, StateFileError, handle_exception

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateFileHeader:
    """Header of a model state file"""
    start_date: date
    n_layers: int
    n_nodes: int
    startrec: int = 0


def check_state_file(path: Union[str, Path], n_layers: int, n_nodes: int) -> StateFileHeader:
    """
    Read a state file header and verify it matches the run structure.

    Args:
        path: State file location
        n_layers: Number of soil layers of the run
        n_nodes: Number of thermal nodes of the run

    Returns:
        The parsed header; ``startrec`` is always 0

    Raises:
        StateFileError: if the file is missing, malformed, or was written for
            a different number of layers or nodes
    """
    path = Path(path)
    context = ErrorContext(component="StateFile", operation="check_state_file", details={"path": str(path)})

    try:
        with open(path, encoding="utf-8") as f:
            year, month, day = (int(v) for v in f.readline().split()[:3])
            file_layers, file_nodes = (int(v) for v in f.readline().split()[:2])
        start_date = date(year, month, day)
    except (OSError, ValueError) as e:
        error = handle_exception(e, context)
        raise StateFileError(f"Unreadable state file header in {path}: {error.message}", context) from e

    if file_layers != n_layers:
        raise StateFileError(
            f"The number of soil moisture layers in the model state file ({file_layers}) "
            f"does not equal that of the run configuration ({n_layers})",
            context,
        )
    if file_nodes != n_nodes:
        raise StateFileError(
            f"The number of soil thermal nodes in the model state file ({file_nodes}) "
            f"does not equal that of the run configuration ({n_nodes})",
            context,
        )

    logger.info(f"State file {path.name} valid for {start_date.isoformat()}")
    return StateFileHeader(start_date=start_date, n_layers=file_layers, n_nodes=file_nodes)
