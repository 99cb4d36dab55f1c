import sys
from pathlib import Path

import pytest

import enumgen

VALID_SOURCE = "x = 1\n"


def test_format_source_without_formatter_returns_text_unchanged() -> None:
    assert enumgen.format_source(VALID_SOURCE, ()) == VALID_SOURCE


def test_format_source_uses_formatter_stdout() -> None:
    formatter = (
        sys.executable,
        "-c",
        "import sys; sys.stdout.write(sys.stdin.read().replace('1', '2'))",
    )

    assert enumgen.format_source(VALID_SOURCE, formatter) == "x = 2\n"


def test_format_source_falls_back_when_formatter_fails(
    capsys: pytest.CaptureFixture[str],
) -> None:
    formatter = (sys.executable, "-c", "import sys; sys.exit(3)")

    assert enumgen.format_source(VALID_SOURCE, formatter) == VALID_SOURCE
    assert "warning:" in capsys.readouterr().err


def test_format_source_falls_back_when_formatter_is_missing(
    capsys: pytest.CaptureFixture[str],
) -> None:
    formatter = ("enumgen-no-such-formatter", "-")

    assert enumgen.format_source(VALID_SOURCE, formatter) == VALID_SOURCE
    assert "enumgen-no-such-formatter" in capsys.readouterr().err


def test_format_source_keeps_invalid_python_and_warns(
    capsys: pytest.CaptureFixture[str],
) -> None:
    broken = "def broken(:\n"
    formatter = (sys.executable, "-c", "raise SystemExit('must not run')")

    assert enumgen.format_source(broken, formatter) == broken
    err = capsys.readouterr().err
    assert "invalid Python generated" in err


def test_write_output_creates_parents_and_reports_counts(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "enums.py"

    result = enumgen.write_output(target, "a = 1\nb = 'é'\n")

    assert target.read_text(encoding="utf-8") == "a = 1\nb = 'é'\n"
    assert result.filename == "enums.py"
    assert result.path == target.resolve()
    assert result.line_count == 2
    assert result.byte_count == len("a = 1\nb = 'é'\n".encode("utf-8"))
