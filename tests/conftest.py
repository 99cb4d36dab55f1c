import ast
import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import enumgen  # noqa: E402

COLOR_SOURCE = """
from typing import Annotated


class ColorEnum:
    Red: Annotated[str, 'enum:"-"']
    Blue: Annotated[str, 'enum:"blue,primary color"']
"""


@pytest.fixture
def make_tree() -> Callable[[str], ast.Module]:
    def _make_tree(source: str) -> ast.Module:
        return ast.parse(textwrap.dedent(source))

    return _make_tree


@pytest.fixture
def make_package() -> Callable[..., enumgen.SourcePackage]:
    def _make_package(*sources: str, name: str = "colors") -> enumgen.SourcePackage:
        files = tuple(
            enumgen.SourceFile(
                path=Path(f"module_{index}.py"),
                tree=ast.parse(textwrap.dedent(source)),
            )
            for index, source in enumerate(sources)
        )
        return enumgen.SourcePackage(name=name, files=files)

    return _make_package


@pytest.fixture
def write_package(tmp_path: Path) -> Callable[..., Path]:
    def _write_package(files: dict[str, str], name: str = "colors") -> Path:
        package_dir = tmp_path / name
        package_dir.mkdir(parents=True, exist_ok=True)
        for filename, source in files.items():
            (package_dir / filename).write_text(
                textwrap.dedent(source), encoding="utf-8"
            )
        return package_dir

    return _write_package


@pytest.fixture
def load_generated() -> Callable[[str], dict[str, object]]:
    def _load_generated(source: str) -> dict[str, object]:
        namespace: dict[str, object] = {"__name__": "generated_enums"}
        exec(compile(source, "enums.py", "exec"), namespace)
        return namespace

    return _load_generated
