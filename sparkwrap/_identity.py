import getpass
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, TypeVar

import sentry_sdk

from sparkwrap._common import (
    ENABLE_PROXYING,
    HADOOP_PROXY_USER,
    HADOOP_TOKEN_FILE_LOCATION,
    USER_TO_PROXY,
    SparkWrapError,
    parse_bool,
)
from sparkwrap._props import JobProps

logger = logging.getLogger(__name__)

TOKEN_STORAGE_MAGIC = b"HDTS"
# writable (0) and protobuf (1) token storage formats
TOKEN_STORAGE_VERSIONS = {0, 1}

T = TypeVar("T")


class IdentityResolutionError(SparkWrapError):
    pass


@dataclass(frozen=True)
class SecurityContext:
    user: str | None = None
    token_file: Path | None = None
    login_user: str | None = None

    @property
    def is_impersonated(self) -> bool:
        return self.user is not None

    def environment(self) -> dict[str, str]:
        if not self.is_impersonated:
            return {}

        env = {HADOOP_PROXY_USER: str(self.user)}
        if self.token_file is not None:
            env[HADOOP_TOKEN_FILE_LOCATION] = str(self.token_file)
        return env

    def __str__(self) -> str:
        if not self.is_impersonated:
            return "ambient"
        return f"{self.user} via {self.login_user} (tokens: {self.token_file})"


AMBIENT = SecurityContext()


def impersonation_requested(props: JobProps) -> bool:
    return parse_bool(props.get(ENABLE_PROXYING))


def target_user(props: JobProps) -> str | None:
    user = props.get(USER_TO_PROXY)
    if user is None or not user.strip():
        return None
    return user.strip()


def should_impersonate(props: JobProps) -> bool:
    return impersonation_requested(props) and target_user(props) is not None


def validate_token_file(token_file: str | None) -> Path:
    """
    Makes sure the delegation tokens handed over by the orchestrator are actually usable before we try to act as
    somebody else. We never create, modify or delete this file.
    """
    if not token_file:
        raise IdentityResolutionError(f"{HADOOP_TOKEN_FILE_LOCATION} is not set, there are no delegation tokens")

    path = Path(token_file)
    if not path.is_file():
        raise IdentityResolutionError(f"Delegation token file {path} does not exist or is not a file")

    try:
        with open(path, "rb") as f:
            header = f.read(len(TOKEN_STORAGE_MAGIC) + 1)
    except OSError as e:
        raise IdentityResolutionError(f"Cannot read delegation token file {path}: {e}") from e

    if len(header) <= len(TOKEN_STORAGE_MAGIC) or not header.startswith(TOKEN_STORAGE_MAGIC):
        raise IdentityResolutionError(f"{path} is not a Hadoop token storage file")

    version = header[len(TOKEN_STORAGE_MAGIC)]
    if version not in TOKEN_STORAGE_VERSIONS:
        raise IdentityResolutionError(f"Unknown token storage version {version} in {path}")

    return path


def login_user() -> str | None:
    try:
        return getpass.getuser()
    except (KeyError, OSError) as e:
        # arbitrary container uids have neither a passwd entry nor LOGNAME/USER
        logger.warning(f"Cannot determine the login user: {e}")
        return None


def resolve_identity(props: JobProps, token_file: str | None = None) -> SecurityContext:
    """
    Decides under which identity the submission runs.
    :param props: the job properties
    :param token_file: delegation token location, defaults to `HADOOP_TOKEN_FILE_LOCATION` of this process
    :return: AMBIENT if no impersonation is requested, otherwise the proxy user's context
    """
    if not impersonation_requested(props):
        logger.info("Impersonation not requested, running as the current user")
        return AMBIENT

    if not should_impersonate(props):
        raise IdentityResolutionError(f"{ENABLE_PROXYING} is set but {USER_TO_PROXY} is missing or empty")
    user = str(target_user(props))

    if token_file is None:
        token_file = os.environ.get(HADOOP_TOKEN_FILE_LOCATION)
    token_path = validate_token_file(token_file)

    context = SecurityContext(user=user, token_file=token_path, login_user=login_user())
    logger.info(f"Resolved proxy identity {context}")
    return context


_active_context: SecurityContext | None = None


@contextmanager
def identity_scope(context: SecurityContext, log: logging.Logger = logger) -> Iterator[SecurityContext]:
    """
    Runs the body as `context`: child processes started inside the scope inherit the proxy user and its delegation
    tokens. The previous environment is restored on every exit path and exceptions pass through untouched.
    """
    global _active_context
    if _active_context is not None:
        raise RuntimeError(f"Identity scope for {_active_context} is already active")

    overrides = context.environment()
    previous = {name: os.environ.get(name) for name in overrides}

    _active_context = context
    try:
        if context.is_impersonated:
            sentry_sdk.set_tag("sparkwrap.proxy.user", context.user)
            log.info(f"Entering identity scope of {context}")
        os.environ.update(overrides)
        yield context
    finally:
        for name, value in previous.items():
            if value is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = value
        _active_context = None
        if context.is_impersonated:
            log.info(f"Left identity scope of {context}")


def run_as(
    context: SecurityContext, fn: Callable[..., T], *args: object, log: logging.Logger = logger, **kwargs: object
) -> T:
    with identity_scope(context, log):
        return fn(*args, **kwargs)
