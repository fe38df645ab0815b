from pathlib import Path

import pytest

from sparkwrap._common import JOB_PROP_FILE_ENV
from sparkwrap._props import JobPropsError, load_job_props, parse_properties


# --- parse_properties tests ---


def test_parse_properties_separators() -> None:
    props = parse_properties(["a=1", "b : 2", "c 3", "d:4", "e\t=\t5"])
    assert props == {"a": "1", "b": "2", "c": "3", "d": "4", "e": "5"}


def test_parse_properties_skips_comments_and_blank_lines() -> None:
    props = parse_properties(["# comment", "   ! also a comment", "", "   ", "a=1"])
    assert props == {"a": "1"}


def test_parse_properties_line_continuation() -> None:
    props = parse_properties(["d = multi \\\n", "    line\n", "e=x"])
    assert props == {"d": "multi line", "e": "x"}


def test_parse_properties_escaped_backslash_is_not_a_continuation() -> None:
    props = parse_properties(["p=c:\\\\", "q=1"])
    assert props == {"p": "c:\\", "q": "1"}


def test_parse_properties_escapes() -> None:
    props = parse_properties(["e=tab\\tchar", "f\\ key=x", "g=\\u0041", "h\\=k=v", "url=http\\://az"])
    assert props == {"e": "tab\tchar", "f key": "x", "g": "A", "h=k": "v", "url": "http://az"}


def test_parse_properties_empty_values() -> None:
    assert parse_properties(["h=", "i"]) == {"h": "", "i": ""}


def test_parse_properties_value_keeps_separators() -> None:
    assert parse_properties(["link=http://az:8443/executor?execid=1"]) == {
        "link": "http://az:8443/executor?execid=1"
    }


def test_parse_properties_later_keys_win() -> None:
    assert parse_properties(["a=1", "a=2"]) == {"a": "2"}


def test_parse_properties_malformed_unicode_escape() -> None:
    with pytest.raises(JobPropsError):
        parse_properties(["x=\\u00G1"])
    with pytest.raises(JobPropsError):
        parse_properties(["x=\\u00"])


# --- load_job_props tests ---


def test_load_job_props_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    props_file = tmp_path / "job.properties"
    props_file.write_text("azkaban.should.proxy=true\nuser.to.proxy=alice\n", encoding="utf-8")
    monkeypatch.setenv(JOB_PROP_FILE_ENV, str(props_file))

    props = load_job_props()

    assert dict(props) == {"azkaban.should.proxy": "true", "user.to.proxy": "alice"}


def test_load_job_props_is_read_only(tmp_path: Path) -> None:
    props_file = tmp_path / "job.properties"
    props_file.write_text("a=1\n", encoding="utf-8")

    props = load_job_props(props_file)

    with pytest.raises(TypeError):
        props["a"] = "2"  # type: ignore[index]


def test_load_job_props_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(JOB_PROP_FILE_ENV, raising=False)
    with pytest.raises(JobPropsError):
        load_job_props()


def test_load_job_props_missing_file(tmp_path: Path) -> None:
    with pytest.raises(JobPropsError):
        load_job_props(tmp_path / "missing.properties")
