"""
Tests for rebuilding the spark-submit argument vector.

The Azkaban spark job type joins the real arguments with ^Z, and the process boundary in between splits that string
on whitespace again. These tests feed in vectors as they arrive after that damage.
"""

import pytest

from sparkwrap._common import ATTEMPT_LINK, EXECUTION_LINK, JOB_LINK, SPARK_ARG_DELIMITER, WORKFLOW_LINK
from sparkwrap._hadoop import HadoopConfiguration
from sparkwrap._submit import (
    EmptyArgumentsError,
    MalformedArgumentsError,
    SubmissionBuilder,
    TrackingMetadata,
    augment_driver_options,
    reconstruct_args,
)

Z = SPARK_ARG_DELIMITER

EMPTY_TRACKING = f" -D{WORKFLOW_LINK}= -D{JOB_LINK}= -D{EXECUTION_LINK}= -D{ATTEMPT_LINK}="


def corrupt(args: list[str]) -> list[str]:
    """What the orchestrator's transport does to a properly delimited vector."""
    return Z.join(args).split(" ")


class CountingConfiguration(HadoopConfiguration):
    def __init__(self, values: dict[str, str]) -> None:
        super().__init__()
        self.values = values
        self.lookups: list[str] = []

    def get(self, key: str, default: str | None = None) -> str | None:
        self.lookups.append(key)
        return self.values.get(key, default)


# --- reconstruct_args tests ---


def test_reconstruct_args_rejects_empty_vector() -> None:
    with pytest.raises(EmptyArgumentsError):
        reconstruct_args([])


def test_reconstruct_args_rejects_single_token() -> None:
    with pytest.raises(MalformedArgumentsError):
        reconstruct_args(["com.foo.Main", "--conf", "x=1"])


def test_reconstruct_args_restores_boundaries() -> None:
    raw = [f"com.foo.Main{Z}--conf", f"x=1{Z}--class", f"com.foo.Main{Z}/path/app.jar"]
    assert reconstruct_args(raw) == ["com.foo.Main", "--conf x=1", "--class com.foo.Main", "/path/app.jar"]


def test_reconstruct_args_is_left_inverse_of_corruption() -> None:
    original = [
        "/path/app.jar",
        "-Dfoo=bar -Xmx1g",
        "--master yarn",
        "--deploy-mode cluster",
        "--conf spark.executor.extraJavaOptions=-Da=1 -Db=2",
        "--class com.foo.Main",
        "/path/app.jar",
        "input output",
    ]
    assert reconstruct_args(corrupt(original)) == original


def test_reconstruct_args_keeps_empty_tokens() -> None:
    assert reconstruct_args([f"main{Z}{Z}jar"]) == ["main", "", "jar"]


def test_reconstruct_args_drops_trailing_empty_tokens() -> None:
    assert reconstruct_args([f"main{Z}opts{Z}"]) == ["main", "opts"]
    assert reconstruct_args([f"main{Z}opts{Z}{Z}"]) == ["main", "opts"]
    assert reconstruct_args([f"{Z}main{Z}opts{Z}"]) == ["", "main", "opts"]


def test_reconstruct_args_trailing_delimiter_alone_is_malformed() -> None:
    with pytest.raises(MalformedArgumentsError):
        reconstruct_args([f"main{Z}"])
    with pytest.raises(MalformedArgumentsError):
        reconstruct_args([f"main{Z}{Z}"])


def test_reconstruct_args_restores_space_runs() -> None:
    # runs of spaces were split into empty tokens upstream, joining with single spaces restores them
    original = ["main", "a  b", "c"]
    assert reconstruct_args(corrupt(original)) == original


# --- tracking metadata tests ---


def test_tracking_metadata_renders_in_fixed_order() -> None:
    conf = CountingConfiguration(
        {
            ATTEMPT_LINK: "http://az/attempt",
            WORKFLOW_LINK: "http://az/flow",
            EXECUTION_LINK: "http://az/exec",
            JOB_LINK: "http://az/job",
        }
    )
    tracking = TrackingMetadata.from_configuration(conf)

    assert tracking.options() == [
        f"-D{WORKFLOW_LINK}=http://az/flow",
        f"-D{JOB_LINK}=http://az/job",
        f"-D{EXECUTION_LINK}=http://az/exec",
        f"-D{ATTEMPT_LINK}=http://az/attempt",
    ]
    assert conf.lookups == [WORKFLOW_LINK, JOB_LINK, EXECUTION_LINK, ATTEMPT_LINK]


def test_tracking_metadata_keeps_placeholder_for_missing_links() -> None:
    tracking = TrackingMetadata.from_configuration(CountingConfiguration({JOB_LINK: "http://az/job"}))

    assert tracking.options() == [
        f"-D{WORKFLOW_LINK}=",
        f"-D{JOB_LINK}=http://az/job",
        f"-D{EXECUTION_LINK}=",
        f"-D{ATTEMPT_LINK}=",
    ]


def test_augment_driver_options_appends_after_existing_options() -> None:
    tracking = TrackingMetadata(workflow="-Dw=1", job="-Dj=2", execution="-De=3", attempt="-Da=4")
    assert augment_driver_options("-Xmx1g", tracking) == "-Xmx1g -Dw=1 -Dj=2 -De=3 -Da=4"


# --- SubmissionBuilder tests ---


def test_builder_without_tracking_links() -> None:
    raw = [f"com.foo.Main{Z}--conf", f"x=1{Z}--class", f"com.foo.Main{Z}/path/app.jar"]

    args = SubmissionBuilder(HadoopConfiguration()).build(raw)

    assert args == ("com.foo.Main", "--conf x=1" + EMPTY_TRACKING, "--class com.foo.Main", "/path/app.jar")


def test_builder_only_touches_driver_options() -> None:
    original = ["/app.jar", "-Dfoo=bar", "--class Main", "--num-executors 3", "arg"]
    conf = CountingConfiguration({WORKFLOW_LINK: "w", JOB_LINK: "j", EXECUTION_LINK: "e", ATTEMPT_LINK: "a"})

    args = SubmissionBuilder(conf).build(corrupt(original))

    assert len(args) == len(original)
    for idx, (built, expected) in enumerate(zip(args, original)):
        if idx == 1:
            assert built == f"-Dfoo=bar -D{WORKFLOW_LINK}=w -D{JOB_LINK}=j -D{EXECUTION_LINK}=e -D{ATTEMPT_LINK}=a"
        else:
            assert built == expected


def test_builder_queries_tracking_links_once() -> None:
    conf = CountingConfiguration({})
    builder = SubmissionBuilder(conf)

    builder.build([f"main{Z}opts"])
    builder.build([f"main{Z}opts"])

    assert len(conf.lookups) == 4


def test_builder_rejects_empty_before_looking_at_configuration() -> None:
    conf = CountingConfiguration({})

    with pytest.raises(EmptyArgumentsError):
        SubmissionBuilder(conf).build([])

    assert conf.lookups == []
