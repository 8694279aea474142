"""Exception hierarchy for the pH prediction pipeline.

Each error records the pipeline stage it was raised in, so the command
line entry point can report ``<stage> stage failed: <cause>``.
"""


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    stage = "pipeline"

    def __init__(self, message: str, stage: str = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ParseError(PipelineError):
    """Input file is missing, unreadable, or has a bad column/value."""

    stage = "load"

    def __init__(self, message: str, column: str = None, row: int = None):
        super().__init__(message)
        self.column = column
        self.row = row


class ConfigurationError(PipelineError, ValueError):
    """Invalid hyperparameter or a degenerate split."""

    stage = "config"


class ScalingError(PipelineError):
    """A column cannot be scaled (constant, non-finite, or unknown)."""

    stage = "scale"


class TrainingError(PipelineError):
    """A resampling round diverged or did not converge."""

    stage = "train"


class OutputError(PipelineError, OSError):
    """A result file could not be written."""

    stage = "report"
