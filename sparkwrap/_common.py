import re

# marks the true argument boundaries; the orchestrator joins arguments with it before its own transport
# re-tokenizes everything on whitespace
SPARK_ARG_DELIMITER = "\u001a"

JOB_PROP_FILE_ENV = "JOB_PROP_FILE"
HADOOP_TOKEN_FILE_LOCATION = "HADOOP_TOKEN_FILE_LOCATION"
HADOOP_PROXY_USER = "HADOOP_PROXY_USER"
HADOOP_CONF_DIR = "HADOOP_CONF_DIR"
SPARK_HOME = "SPARK_HOME"

ENABLE_PROXYING = "azkaban.should.proxy"
USER_TO_PROXY = "user.to.proxy"

WORKFLOW_LINK = "azkaban.link.workflow.url"
JOB_LINK = "azkaban.link.job.url"
EXECUTION_LINK = "azkaban.link.execution.url"
ATTEMPT_LINK = "azkaban.link.attempt.url"

FLOW_EXEC_ID = "azkaban.flow.execid"
JOB_ID = "azkaban.job.id"

TRACKING_LINKS = (WORKFLOW_LINK, JOB_LINK, EXECUTION_LINK, ATTEMPT_LINK)

VAR_REF_RE = re.compile(r"\$\{([^\}\$\s]+)\}")


class SparkWrapError(Exception):
    pass


def parse_bool(value: str | None) -> bool:
    """Only a literal 'true' enables a flag, anything else (including absence) disables it."""
    if value is None:
        return False
    return value.strip().lower() == "true"
