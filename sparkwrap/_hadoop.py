import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable

from sparkwrap._common import (
    HADOOP_CONF_DIR,
    JOB_LINK,
    WORKFLOW_LINK,
    EXECUTION_LINK,
    ATTEMPT_LINK,
    FLOW_EXEC_ID,
    JOB_ID,
    USER_TO_PROXY,
    VAR_REF_RE,
    SparkWrapError,
)
from sparkwrap._props import JobProps

logger = logging.getLogger(__name__)

DEFAULT_RESOURCES = ("core-default.xml", "core-site.xml")

INJECT_FILE = "hadoop-inject.xml"
INJECT_PREFIX = "hadoop-inject."
WORKING_DIR = "working.dir"

# job properties that are always made visible to the compute job
INJECTED_JOB_PROPS = (
    "azkaban.flow.flowid",
    "azkaban.flow.projectname",
    "azkaban.flow.submituser",
    "azkaban.job.attempt",
    FLOW_EXEC_ID,
    JOB_ID,
    WORKFLOW_LINK,
    JOB_LINK,
    EXECUTION_LINK,
    ATTEMPT_LINK,
    USER_TO_PROXY,
)

MAX_SUBST_DEPTH = 20


class HadoopConfigurationError(SparkWrapError):
    pass


def read_resource(path: Path) -> tuple[dict[str, str], set[str]]:
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise HadoopConfigurationError(f"Malformed Hadoop configuration resource {path}: {e}") from e

    if root.tag != "configuration":
        raise HadoopConfigurationError(f"Bad root element <{root.tag}> in {path}, expected <configuration>")

    values: dict[str, str] = {}
    final: set[str] = set()
    for prop in root.iter("property"):
        name = prop.findtext("name")
        if not name:
            logger.warning(f"Skipping property without a name in {path}")
            continue
        name = name.strip()
        values[name] = (prop.findtext("value") or "").strip()
        if (prop.findtext("final") or "").strip().lower() == "true":
            final.add(name)

    return values, final


class HadoopConfiguration:
    """
    The subset of org.apache.hadoop.conf.Configuration the launcher relies on: ordered XML resources where later
    resources override earlier ones unless a property was marked final, and `${...}` substitution on read.
    """

    def __init__(self, resources: Iterable[Path] = ()) -> None:
        self.resources: list[Path] = list(resources)
        self._values: dict[str, str] | None = None

    @classmethod
    def from_environment(cls, extra_resources: Iterable[Path] = ()) -> "HadoopConfiguration":
        resources: list[Path] = []
        conf_dir = os.environ.get(HADOOP_CONF_DIR)
        if conf_dir:
            resources.extend(Path(conf_dir) / name for name in DEFAULT_RESOURCES)
        resources.extend(extra_resources)
        return cls(resources)

    def add_resource(self, path: Path) -> None:
        self.resources.append(path)
        self._values = None

    def _load(self) -> dict[str, str]:
        if self._values is not None:
            return self._values

        values: dict[str, str] = {}
        final: set[str] = set()
        for resource in self.resources:
            if not resource.is_file():
                logger.debug(f"Hadoop configuration resource {resource} does not exist, skipping")
                continue
            resource_values, resource_final = read_resource(resource)
            for name, value in resource_values.items():
                if name in final:
                    logger.warning(f"{resource}: attempt to override final parameter {name}, ignoring")
                    continue
                values[name] = value
            final |= resource_final

        self._values = values
        return values

    def _substitute(self, value: str) -> str:
        values = self._load()
        for _ in range(MAX_SUBST_DEPTH):
            match = VAR_REF_RE.search(value)
            if match is None:
                return value

            var = match.group(1)
            if var.startswith("env."):
                replacement = os.environ.get(var[len("env.") :])
            else:
                replacement = values.get(var, os.environ.get(var))
            if replacement is None:
                # unresolvable references are kept verbatim
                return value

            value = value[: match.start()] + replacement + value[match.end() :]

        raise HadoopConfigurationError(f"Variable substitution depth too large: {MAX_SUBST_DEPTH} {value}")

    def get(self, key: str, default: str | None = None) -> str | None:
        value = self._load().get(key)
        if value is None:
            return default
        return self._substitute(value)

    def java_opt(self, key: str) -> str:
        """
        Renders a property as a JVM system property option. Missing keys still produce a (valueless) option so that
        the number of options derived from a fixed key list never changes.
        """
        value = self.get(key)
        if value is None:
            logger.warning(f"Cannot find property {key} in the Hadoop configuration, passing it empty")
            value = ""
        return f"-D{key}={value}"


def injectable_props(props: JobProps) -> dict[str, str]:
    injected: dict[str, str] = {}
    for key in INJECTED_JOB_PROPS:
        if key in props:
            injected[key] = props[key]

    for key, value in props.items():
        if key.startswith(INJECT_PREFIX) and len(key) > len(INJECT_PREFIX):
            injected[key[len(INJECT_PREFIX) :]] = value

    return injected


def inject_resources(props: JobProps, working_dir: Path | None = None) -> Path:
    """
    Writes the job properties the compute job needs to see into a Hadoop XML resource in the job's working directory.
    :param props: the job properties
    :param working_dir: defaults to `working.dir` of the job, or the current directory
    :return: the path of the written resource, to be added to a HadoopConfiguration
    """
    if working_dir is None:
        working_dir = Path(props.get(WORKING_DIR) or os.getcwd())

    root = ET.Element("configuration")
    for name, value in injectable_props(props).items():
        prop = ET.SubElement(root, "property")
        ET.SubElement(prop, "name").text = name
        ET.SubElement(prop, "value").text = value
    ET.indent(root)

    inject_path = working_dir / INJECT_FILE
    ET.ElementTree(root).write(inject_path, encoding="utf-8", xml_declaration=True)
    logger.info(f"Injected {len(root)} properties into {inject_path}")
    return inject_path
