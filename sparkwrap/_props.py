"""
Loading of the job properties Azkaban hands to every job process.

Azkaban flattens the job's configuration into a Java `.properties` file and exports its location in `JOB_PROP_FILE`.
We only need the subset of the format that Azkaban actually writes, but comments, continuations and escapes are
handled the way `java.util.Properties.load()` does, so hand-written job files behave the same as in the JVM wrappers.
"""

import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from sparkwrap._common import JOB_PROP_FILE_ENV, SparkWrapError

logger = logging.getLogger(__name__)

JobProps = Mapping[str, str]

_ESCAPES = {
    "t": "\t",
    "n": "\n",
    "r": "\r",
    "f": "\f",
}

_KEY_TERMINATORS = "=: \t\f"


class JobPropsError(SparkWrapError):
    pass


def _logical_lines(lines: Iterable[str]) -> Iterator[str]:
    pending = ""
    continuing = False
    for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if continuing:
            line = line.lstrip(" \t\f")
        elif not line.strip() or line.lstrip(" \t\f")[0] in "#!":
            continue
        else:
            line = line.lstrip(" \t\f")

        # an odd number of trailing backslashes continues the line
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending += line[:-1]
            continuing = True
            continue

        yield pending + line
        pending = ""
        continuing = False

    if continuing:
        yield pending


def _unescape(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        c = text[i]
        if c != "\\" or i + 1 >= len(text):
            out.append(c)
            i += 1
            continue

        nxt = text[i + 1]
        if nxt == "u":
            code = text[i + 2 : i + 6]
            if len(code) != 4:
                raise JobPropsError(f"Malformed \\uxxxx encoding in {text!r}")
            try:
                out.append(chr(int(code, 16)))
            except ValueError:
                raise JobPropsError(f"Malformed \\uxxxx encoding in {text!r}") from None
            i += 6
            continue

        out.append(_ESCAPES.get(nxt, nxt))
        i += 2

    return "".join(out)


def _split_key_value(line: str) -> tuple[str, str]:
    i = 0
    while i < len(line):
        c = line[i]
        if c == "\\":
            i += 2
            continue
        if c in _KEY_TERMINATORS:
            break
        i += 1

    key = line[:i]
    rest = line[i:].lstrip(" \t\f")
    # one explicit separator is allowed after the whitespace between key and value
    if rest[:1] in ("=", ":") and (i >= len(line) or line[i] not in "=:"):
        rest = rest[1:]
    elif i < len(line) and line[i] in "=:":
        rest = line[i + 1 :]
    return _unescape(key), _unescape(rest.lstrip(" \t\f"))


def parse_properties(lines: Iterable[str]) -> dict[str, str]:
    props: dict[str, str] = {}
    for line in _logical_lines(lines):
        key, value = _split_key_value(line)
        props[key] = value
    return props


def job_props_path() -> Path:
    path = os.environ.get(JOB_PROP_FILE_ENV)
    if not path:
        raise JobPropsError(f"{JOB_PROP_FILE_ENV} is not set, cannot locate the job properties")
    return Path(path)


def load_job_props(path: Path | None = None) -> JobProps:
    """
    Reads the job properties once. The result is a read-only view, nothing downstream is supposed to mutate it.
    :param path: the properties file, defaults to the location exported in `JOB_PROP_FILE`
    :return: the flat key/value configuration of the job
    """
    if path is None:
        path = job_props_path()

    try:
        with open(path, "r", encoding="utf-8") as f:
            props = parse_properties(f)
    except OSError as e:
        raise JobPropsError(f"Failed to read job properties from {path}: {e}") from e

    logger.debug(f"Loaded {len(props)} job properties from {path}")
    return MappingProxyType(props)
