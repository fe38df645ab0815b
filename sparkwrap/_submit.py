import logging
import os
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import NoReturn, Sequence

from pydantic import BaseModel

from sparkwrap._common import (
    SPARK_ARG_DELIMITER,
    SPARK_HOME,
    TRACKING_LINKS,
    SparkWrapError,
)
from sparkwrap._hadoop import HadoopConfiguration

logger = logging.getLogger(__name__)

SPARK_SUBMIT = "spark-submit"


class ArgumentReconstructionError(SparkWrapError):
    pass


class EmptyArgumentsError(ArgumentReconstructionError):
    pass


class MalformedArgumentsError(ArgumentReconstructionError):
    pass


class SubmitterNotFoundError(SparkWrapError):
    pass


class TrackingMetadata(BaseModel):
    workflow: str
    job: str
    execution: str
    attempt: str

    @classmethod
    def from_configuration(cls, conf: HadoopConfiguration) -> "TrackingMetadata":
        workflow, job, execution, attempt = (conf.java_opt(key) for key in TRACKING_LINKS)
        return cls(workflow=workflow, job=job, execution=execution, attempt=attempt)

    def options(self) -> list[str]:
        return [self.workflow, self.job, self.execution, self.attempt]


def reconstruct_args(raw_args: Sequence[str]) -> list[str]:
    """
    Undoes the whitespace re-tokenization that happened on the way to this process: the arguments are glued back
    together with single spaces and split on the delimiter the sender put between the real arguments.
    """
    if len(raw_args) == 0:
        raise EmptyArgumentsError("SparkSubmit cannot run with zero args")

    args = " ".join(raw_args).split(SPARK_ARG_DELIMITER)
    # trailing empty arguments are dropped, leading and inner ones are kept
    while args and args[-1] == "":
        args.pop()
    if len(args) < 2:
        raise MalformedArgumentsError(
            f"Expected at least the primary resource and the driver options, got {len(args)} argument(s): {args}"
        )

    return args


def augment_driver_options(driver_options: str, tracking: TrackingMetadata) -> str:
    return " ".join([driver_options, *tracking.options()])


class SubmissionBuilder:
    def __init__(self, conf: HadoopConfiguration, log: logging.Logger = logger) -> None:
        self.conf = conf
        self.log = log
        self._tracking: TrackingMetadata | None = None

    @property
    def tracking(self) -> TrackingMetadata:
        if self._tracking is None:
            self._tracking = TrackingMetadata.from_configuration(self.conf)
        return self._tracking

    def build(self, raw_args: Sequence[str]) -> tuple[str, ...]:
        args = reconstruct_args(raw_args)
        self.log.info(f"newArgs: {args}")

        args[1] = augment_driver_options(args[1], self.tracking)
        self.log.info(f"newArgs2: {args}")
        return tuple(args)


class Submitter(ABC):
    @abstractmethod
    def submit(self, args: Sequence[str]) -> NoReturn:
        raise NotImplementedError()


def find_spark_submit() -> Path:
    spark_home = os.environ.get(SPARK_HOME)
    if spark_home:
        candidate = Path(spark_home) / "bin" / SPARK_SUBMIT
        if candidate.is_file():
            return candidate
        logger.warning(f"{candidate} does not exist, falling back to PATH")

    found = shutil.which(SPARK_SUBMIT)
    if found is None:
        raise SubmitterNotFoundError(f"Couldn't find {SPARK_SUBMIT} in {SPARK_HOME} or on the PATH")
    return Path(found)


class SparkSubmit(Submitter):
    def __init__(self, executable: Path | None = None) -> None:
        self.executable = executable

    def submit(self, args: Sequence[str]) -> NoReturn:
        executable = self.executable or find_spark_submit()
        logger.info(f"Handing over to {executable}")
        # inherits os.environ, so an active identity scope applies to the child
        subprocess.run([str(executable), *args], check=True)
        sys.exit(0)


def run_spark(
    raw_args: Sequence[str], conf: HadoopConfiguration, submitter: Submitter, log: logging.Logger = logger
) -> NoReturn:
    args = SubmissionBuilder(conf, log).build(raw_args)
    submitter.submit(args)
