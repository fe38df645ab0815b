import logging
from pathlib import Path
from typing import NoReturn, Sequence

import sentry_sdk

from sparkwrap._common import FLOW_EXEC_ID, JOB_ID
from sparkwrap._hadoop import HadoopConfiguration, inject_resources
from sparkwrap._identity import resolve_identity, run_as
from sparkwrap._props import JobProps, load_job_props
from sparkwrap._submit import SparkSubmit, Submitter, run_spark

logger = logging.getLogger(__name__)


def tag_job(props: JobProps) -> None:
    for tag, key in (("azkaban.exec.id", FLOW_EXEC_ID), ("azkaban.job.id", JOB_ID)):
        value = props.get(key)
        if value:
            sentry_sdk.set_tag(tag, value)


def launch(
    raw_args: Sequence[str],
    submitter: Submitter | None = None,
    props: JobProps | None = None,
    working_dir: Path | None = None,
    log: logging.Logger = logger,
) -> NoReturn:
    """
    Runs one spark-submit for the calling Azkaban job. Identity problems surface before anything runs as the proxy
    user, everything else propagates from inside the identity scope unchanged.
    """
    if props is None:
        props = load_job_props()
    tag_job(props)

    injected = inject_resources(props, working_dir)
    conf = HadoopConfiguration.from_environment([injected])

    context = resolve_identity(props)
    if submitter is None:
        submitter = SparkSubmit()

    run_as(context, run_spark, raw_args, conf, submitter, log, log=log)
