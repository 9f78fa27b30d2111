"""
GeoScriptHub — Shared Base Tool
================================
Abstract base for config- or file-driven GeoScriptHub tools.

``GeoTool.run()`` is a Template Method: it times two stages,
``validate_inputs`` then ``process``, logs a failure with the stage it
happened in, and on success logs the elapsed time together with whatever
``summary_lines`` the subclass reports.

Subclass sketch::

    from shared.python.base_tool import GeoTool

    class CompositeTool(GeoTool):
        def validate_inputs(self) -> None:
            ...                      # raise InputValidationError on bad input
        def process(self) -> None:
            ...                      # do the work, keep results on self
        def summary_lines(self) -> list[str]:
            return ["2020-dry: 7 scenes"]
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict

# Hub logger; tool modules log through children named
# "geoscripthub.<tool>.<module>".
logger = logging.getLogger("geoscripthub")

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s — %(message)s"
LOG_DATEFMT = "%H:%M:%S"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Attach a console handler to the hub logger once and set its level.

    Safe to call repeatedly; later calls only change the level.
    """
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger


class GeoTool(ABC):
    """Base class for GeoScriptHub tools.

    Attributes:
        input_path: Primary input, a data file or a run configuration.
        output_path: Output file or directory, depending on the tool.
        verbose: Log at DEBUG instead of INFO.
        timings: Seconds spent per stage during the last :meth:`run`,
            keyed ``"validate"`` / ``"process"``.
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        *,
        verbose: bool = False,
    ) -> None:
        self.input_path: Path = Path(input_path)
        self.output_path: Path = Path(output_path)
        self.verbose: bool = verbose
        self.timings: Dict[str, float] = {}

        configure_logging(verbose)

    # ------------------------------------------------------------------
    # Stages implemented by each tool
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_inputs(self) -> None:
        """Check every precondition before any work is done.

        Raises:
            InputValidationError: (or a subclass) on bad input.
        """

    @abstractmethod
    def process(self) -> None:
        """Do the tool's work.  Only called after validation succeeded."""

    def summary_lines(self) -> list[str]:
        """Short lines describing the last run, logged on success."""
        return []

    # ------------------------------------------------------------------
    # Template method
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Validate, process, then log a summary.

        Exceptions from either stage propagate unchanged after being
        logged with the stage name.
        """
        name = self.__class__.__name__
        logger.info("Starting %s", name)
        self.timings = {}

        self._timed("validate", self.validate_inputs)
        self._timed("process", self.process)

        self._report_success(sum(self.timings.values()))

    def _timed(self, stage: str, step: Callable[[], None]) -> None:
        start = time.perf_counter()
        try:
            step()
        except Exception:
            logger.error("%s failed during %s.", self.__class__.__name__, stage)
            raise
        finally:
            self.timings[stage] = time.perf_counter() - start
        logger.debug("%s: %s took %.2fs", self.__class__.__name__, stage, self.timings[stage])

    def _report_success(self, elapsed: float) -> None:
        logger.info(
            "%s completed in %.2fs → %s",
            self.__class__.__name__,
            elapsed,
            self.output_path,
        )
        for line in self.summary_lines():
            logger.info("  %s", line)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"input_path={self.input_path!r}, "
            f"output_path={self.output_path!r})"
        )
