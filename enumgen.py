"""Enum companion generator for annotated Python classes.

Scans the classes named by --types for fields tagged with enum:"..." and
writes one module of enum types with name lookup, display conversion,
iteration and JSON support.

Usage:
    enumgen --types ColorEnum,StatusEnum path/to/package
"""

import argparse
import ast
import re
import shlex
import subprocess
import sys
import warnings
from dataclasses import dataclass
from pathlib import Path

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateError

TOOL_NAME = "enumgen"
DEFAULT_OUTPUT_NAME = "enums.py"
DEFAULT_FORMATTER = "black -q -"


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    """Validated settings for one generation run.

    Attributes:
        type_names: Type names to generate, in request order.
        package_dir: Directory holding the scanned package.
        source_files: Python files of the package, in scan order.
        output: Path of the generated module.
        formatter: Formatter command line. Empty tuple disables formatting.
        invocation: Command-line arguments echoed in the provenance comment.
    """

    type_names: tuple[str, ...]
    package_dir: Path
    source_files: tuple[Path, ...]
    output: Path
    formatter: tuple[str, ...]
    invocation: tuple[str, ...]


VALID_ERROR_CODES = {
    "MISSING_TYPES",
    "INVALID_TYPE_NAME",
    "PATH_NOT_FOUND",
    "MULTIPLE_PACKAGES",
    "NO_SOURCE_FILES",
}
_TYPE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def parse_type_names(raw: str | None) -> tuple[str, ...]:
    names = tuple(name.strip() for name in (raw or "").split(",") if name.strip())
    if not names:
        raise ConfigError(
            "MISSING_TYPES",
            "--types is required.",
            "Pass a comma-separated list of class names: --types ColorEnum,StatusEnum",
        )
    for name in names:
        if not _TYPE_NAME_RE.match(name):
            raise ConfigError(
                "INVALID_TYPE_NAME",
                f"Invalid type name: {name}",
                "Type names must be plain class names (for example ColorEnum).",
            )
    return names


def validate_path_exists(path: Path, flag: str) -> Path:
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        "Provide an existing directory or list of .py files.",
    )


def _is_test_file(path: Path) -> bool:
    return path.name.startswith("test_") or path.name.endswith("_test.py")


def resolve_sources(
    inputs: list[Path], output: Path | None
) -> tuple[Path, tuple[Path, ...], Path]:
    """Resolve positional inputs to (package_dir, source_files, output).

    One directory argument scans every non-test module in it. Otherwise the
    arguments are files that must share a single directory.
    """
    if not inputs:
        inputs = [Path(".")]

    for path in inputs:
        validate_path_exists(path, "inputs")

    if len(inputs) == 1 and inputs[0].is_dir():
        package_dir = inputs[0]
        output = output if output is not None else package_dir / DEFAULT_OUTPUT_NAME
        files = tuple(
            path
            for path in sorted(package_dir.glob("*.py"))
            if not _is_test_file(path) and path.resolve() != output.resolve()
        )
    else:
        parents = {path.resolve().parent for path in inputs}
        if len(parents) != 1 or any(path.is_dir() for path in inputs):
            raise ConfigError(
                "MULTIPLE_PACKAGES",
                f"Inputs span {len(parents)} directories; expected a single package.",
                "Pass one directory, or files from the same directory.",
            )
        package_dir = inputs[0].parent
        output = output if output is not None else package_dir / DEFAULT_OUTPUT_NAME
        files = tuple(inputs)

    if not files:
        raise ConfigError(
            "NO_SOURCE_FILES",
            f"No Python source files found in {package_dir}",
            "Point enumgen at the directory that declares the tagged classes.",
        )
    return package_dir, files, output


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=TOOL_NAME,
        description="Generate enum types from enum-tagged class fields",
    )

    parser.add_argument("--types", type=str, default=None)
    parser.add_argument("--output", type=Path, default=None)

    format_group = parser.add_mutually_exclusive_group()
    format_group.add_argument("--formatter", type=str, default=DEFAULT_FORMATTER)
    format_group.add_argument("--no-format", action="store_true", default=False)

    parser.add_argument("inputs", nargs="*", type=Path)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def validate_config(
    args: argparse.Namespace, invocation: tuple[str, ...] = ()
) -> GenerateConfig:
    type_names = parse_type_names(args.types)
    package_dir, source_files, output = resolve_sources(
        list(args.inputs or []), args.output
    )
    formatter = () if args.no_format else tuple(shlex.split(args.formatter or ""))

    return GenerateConfig(
        type_names=type_names,
        package_dir=package_dir,
        source_files=source_files,
        output=output,
        formatter=formatter,
        invocation=invocation,
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig:
    invocation = tuple(sys.argv[1:] if argv is None else argv)
    return validate_config(parse_args(argv), invocation)


# ===--- Generation errors ---=== #

GENERATION_ERROR_CODES = {
    "MALFORMED_TAG",
    "EMPTY_ENUM",
    "RESERVED_IDENTIFIER",
}


class GenerationError(Exception):
    """Fatal analysis failure. The run stops and no output is written."""

    def __init__(self, code: str, message: str):
        if code not in GENERATION_ERROR_CODES:
            raise ValueError(f"Unknown generation error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message


# ===--- Data classes ---=== #


@dataclass(frozen=True)
class EnumElement:
    """One displayable value taken from a single tagged field.

    Attributes:
        identifier: Declared field name. Becomes the instance attribute.
        display_name: User-facing text. Equals identifier for enum:"-".
        description: Optional text after the first comma, else "".
    """

    identifier: str
    display_name: str
    description: str = ""


@dataclass(frozen=True)
class EnumDefinition:
    original_type_name: str
    public_type_name: str
    elements: tuple[EnumElement, ...]


@dataclass(frozen=True)
class SourceFile:
    path: Path
    tree: ast.Module


@dataclass(frozen=True)
class SourcePackage:
    name: str
    files: tuple[SourceFile, ...]


# ===--- Tag tokenizer ---=== #


# Escapes a double-quoted tag value may use: single-character, \x, \u, \U
# and exactly three octal digits.
_TAG_ESCAPE_RE = re.compile(
    r'\\(?:[abfnrtv\\"]|x[0-9A-Fa-f]{2}|u[0-9A-Fa-f]{4}|U[0-9A-Fa-f]{8}|[0-3][0-7]{2})'
)


def _unquote(quoted: str) -> str | None:
    if "\\" in _TAG_ESCAPE_RE.sub("", quoted[1:-1]):
        return None
    # Unknown escapes only warn in Python; treat them as malformed.
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        try:
            value = ast.literal_eval(quoted)
        except (SyntaxError, ValueError, Warning):
            return None
    return value if isinstance(value, str) else None


def parse_tag(tag: str, key: str) -> tuple[str, bool]:
    """Look up ``key`` in a ``key:"value" key2:"value2"`` tag string.

    Pairs are scanned left to right. The first syntax break (empty key,
    missing colon or opening quote, unterminated value, bad escape) stops
    the scan; pairs before it still count.

    Returns:
        (value, True) for the first pair named ``key``, else ("", False).
    """
    while tag:
        i = 0
        while i < len(tag) and tag[i] == " ":
            i += 1
        tag = tag[i:]
        if not tag:
            break

        # Scan to colon. A space, a quote or a control character is a syntax error.
        i = 0
        while i < len(tag) and tag[i] > " " and tag[i] not in ':"\x7f':
            i += 1
        if i == 0 or i + 1 >= len(tag) or tag[i] != ":" or tag[i + 1] != '"':
            break
        name = tag[:i]
        tag = tag[i + 1 :]

        # Scan quoted string to find value.
        i = 1
        while i < len(tag) and tag[i] != '"':
            if tag[i] == "\\":
                i += 1
            i += 1
        if i >= len(tag):
            break
        quoted = tag[: i + 1]
        tag = tag[i + 1 :]

        if name == key:
            value = _unquote(quoted)
            if value is None:
                break
            return value, True
    return "", False


# ===--- Enum tag interpreter ---=== #

ENUM_TAG_KEY = "enum"
SAME_AS_IDENTIFIER = "-"


_ENUM_KEY_RE = re.compile(rf"(?:^|\s){ENUM_TAG_KEY}:")


def is_enum_tagged(tag: str) -> bool:
    return _ENUM_KEY_RE.search(tag) is not None


def parse_enum_tag(tag: str) -> tuple[str, str]:
    """Split an enum tag value into (display_name, description).

    Only the first two comma-separated segments are used, so a comma
    cannot appear inside a description.

    Raises:
        GenerationError: MALFORMED_TAG when no enum value can be read.
    """
    value, found = parse_tag(tag, ENUM_TAG_KEY)
    if not found:
        raise GenerationError(
            "MALFORMED_TAG", f"enum tag did not contain a name: {tag!r}"
        )
    segments = value.split(",")
    display_name = segments[0]
    description = segments[1] if len(segments) > 1 else ""
    return display_name, description


# ===--- Declaration scanner ---=== #


def field_tag(annotation: ast.expr) -> str | None:
    """Return the raw tag of an ``Annotated[T, "tag", ...]`` annotation."""
    if not isinstance(annotation, ast.Subscript):
        return None
    origin = annotation.value
    if isinstance(origin, ast.Name):
        origin_name = origin.id
    elif isinstance(origin, ast.Attribute):
        origin_name = origin.attr
    else:
        return None
    if origin_name != "Annotated" or not isinstance(annotation.slice, ast.Tuple):
        return None

    for meta in annotation.slice.elts[1:]:
        if isinstance(meta, ast.Constant) and isinstance(meta.value, str):
            return meta.value
    return None


def scan_class(node: ast.ClassDef) -> EnumDefinition | None:
    elements: list[EnumElement] | None = None
    for stmt in node.body:
        if not isinstance(stmt, ast.AnnAssign):
            continue
        tag = field_tag(stmt.annotation)
        if tag is None or not is_enum_tagged(tag):
            continue
        if elements is None:
            elements = []
        if not isinstance(stmt.target, ast.Name):
            continue

        identifier = stmt.target.id
        display_name, description = parse_enum_tag(tag)
        if display_name == SAME_AS_IDENTIFIER:
            display_name = identifier
        elements.append(EnumElement(identifier, display_name, description))

    if elements is None:
        return None
    return build_enum_definition(node.name, elements)


def scan_file(tree: ast.Module, type_name: str) -> list[EnumDefinition]:
    enums: list[EnumDefinition] = []
    for node in tree.body:
        if not isinstance(node, ast.ClassDef) or node.name != type_name:
            continue
        definition = scan_class(node)
        if definition is not None:
            enums.append(definition)
    return enums


def scan_package(package: SourcePackage, type_name: str) -> list[EnumDefinition]:
    """Collect every enum definition declared for ``type_name``.

    Files are visited in package order, so the result follows file then
    declaration order.

    Raises:
        GenerationError: EMPTY_ENUM when no file yields a tagged field.
        GenerationError: MALFORMED_TAG or RESERVED_IDENTIFIER from a field.
    """
    enums: list[EnumDefinition] = []
    for source in package.files:
        enums.extend(scan_file(source.tree, type_name))

    if not enums:
        raise GenerationError("EMPTY_ENUM", f"no values defined for type {type_name}")
    return enums


def load_source_file(path: Path) -> SourceFile:
    text = path.read_text(encoding="utf-8")
    return SourceFile(path=path, tree=ast.parse(text, filename=str(path)))


def load_package(package_dir: Path, files: tuple[Path, ...]) -> SourcePackage:
    """Parse every file of the package once.

    Raises:
        OSError: A source file is not readable.
        SyntaxError: A source file is not valid Python.
    """
    return SourcePackage(
        name=package_dir.resolve().name,
        files=tuple(load_source_file(path) for path in files),
    )


# ===--- Enum model builder ---=== #

ENUM_NAME_SUFFIX = "Enum"
INSTANCE_SUFFIX = "Instance"

# Names owned by the generated class; a field cannot shadow them.
RESERVED_IDENTIFIERS = frozenset(
    {"name", "description", "error", "to_json", "from_json"}
)


def public_type_name(original_type_name: str) -> str:
    if original_type_name.endswith(ENUM_NAME_SUFFIX) and (
        original_type_name != ENUM_NAME_SUFFIX
    ):
        return original_type_name[: -len(ENUM_NAME_SUFFIX)]
    return original_type_name


def build_enum_definition(
    original_type_name: str, elements: list[EnumElement]
) -> EnumDefinition:
    for element in elements:
        identifier = element.identifier
        if identifier in RESERVED_IDENTIFIERS or identifier.startswith("_"):
            raise GenerationError(
                "RESERVED_IDENTIFIER",
                f"field {original_type_name}.{identifier} clashes with "
                "the generated enum API",
            )
    return EnumDefinition(
        original_type_name=original_type_name,
        public_type_name=public_type_name(original_type_name),
        elements=tuple(elements),
    )


def lower_first_char(name: str) -> str:
    return name[:1].lower() + name[1:]


def to_snake_case(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", name).lower()


@dataclass(frozen=True)
class FieldModel:
    """Template view of one element: Key is the display name, Value the identifier."""

    key: str
    value: str
    description: str


@dataclass(frozen=True)
class EnumModel:
    instance_variable: str
    original_type: str
    new_type: str
    function_prefix: str
    fields: tuple[FieldModel, ...]


def build_model(definition: EnumDefinition) -> EnumModel:
    instance_variable = lower_first_char(definition.public_type_name) + INSTANCE_SUFFIX
    return EnumModel(
        instance_variable=instance_variable,
        original_type=definition.original_type_name,
        new_type=definition.public_type_name,
        function_prefix=to_snake_case(definition.public_type_name),
        fields=tuple(
            FieldModel(
                key=element.display_name,
                value=element.identifier,
                description=element.description,
            )
            for element in definition.elements
        ),
    )


# ===--- Code renderer ---=== #

SHARED_ERRORS = '''

class InvalidValueError(ValueError):
    """Raised when a display value does not name any enum instance."""

    def __init__(self, value: str, type_name: str) -> None:
        super().__init__(f"'{value}' is not a valid value for type {type_name}")
        self.value = value
        self.type_name = type_name


class UnknownInstanceError(RuntimeError):
    """Raised when an accessor runs on a value the constructor did not build."""
'''

INSTANCE_TEMPLATE = '''
{% set iv = model.instance_variable %}
{% set t = model.new_type %}

class _{{ iv }}JsonDescriptionModel(TypedDict):
    name: str
    description: str


# {{ model.original_type }} display names by field
_{{ iv }} = MappingProxyType(
    {
{% for field in model.fields %}
        {{ field.value | literal }}: {{ field.key | literal }},
{% endfor %}
    }
)


class {{ t }}:
    """{{ t }} is the enum that instances should be created from."""

    __slots__ = ("_name", "_value", "_description")

    def __init__(self, name: str = "", value: str = "", description: str = "") -> None:
        self._name = name
        self._value = value
        self._description = description

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, {{ t }}):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"{{ t }}(name={self._name!r}, value={self._value!r})"

    def name(self) -> str:
        """name returns the enum display value."""
        if (self._value, self._name) not in _{{ iv }}Known:
            raise UnknownInstanceError("Could not map enum")
        return self._name

    def __str__(self) -> str:
        return self.name()

    def error(self) -> str:
        """error returns the enum name so an instance can serve as an error message."""
        return self.name()

    def description(self) -> str:
        """description returns the enum description, or "" when none is defined."""
        if (self._value, self._name) not in _{{ iv }}Known:
            raise UnknownInstanceError("Could not map enum description")
        return self._description

    def to_json(self) -> str:
        if self.description() != "":
            model: _{{ iv }}JsonDescriptionModel = {
                "name": self.name(),
                "description": self.description(),
            }
            return json.dumps(model)
        return json.dumps(self.name())

    @classmethod
    def from_json(cls, data: str | bytes) -> "{{ t }}":
        """from_json decodes a JSON string holding a display value.

        The decoded value carries name and value only; description stays empty.
        """
        v = json.loads(data)
        if not isinstance(v, str):
            raise TypeError(f"cannot decode JSON {type(v).__name__} into {{ t }}")
        instance = new_{{ model.function_prefix }}(v)
        return cls(name=instance._name, value=instance._value)


# Enum instances
_{{ iv }}Values = (
{% for field in model.fields %}
    {{ t }}(
        name={{ field.key | literal }},
        value={{ field.value | literal }},
        description={{ field.description | literal }},
    ),
{% endfor %}
)
{% for field in model.fields %}
{{ t }}.{{ field.value }} = _{{ iv }}Values[{{ loop.index0 }}]
{% endfor %}
_{{ iv }}ByValue = MappingProxyType(
    {instance._value: instance for instance in _{{ iv }}Values}
)
_{{ iv }}Known = frozenset(
    (instance._value, instance._name) for instance in _{{ iv }}Values
)


def new_{{ model.function_prefix }}(value: str) -> {{ t }}:
    """new_{{ model.function_prefix }} generates a new {{ t }} from the given display value (name)."""
    for instance in _{{ iv }}Values:
        if instance._name == value:
            return instance
    raise InvalidValueError(value, "{{ t }}")


def {{ model.function_prefix }}_names() -> list[str]:
    """{{ model.function_prefix }}_names returns the display values of all enum instances."""
    return [
{% for field in model.fields %}
        {{ field.key | literal }},
{% endfor %}
    ]


def {{ model.function_prefix }}_values() -> list[{{ t }}]:
    """{{ model.function_prefix }}_values returns all enum instances."""
    return list(_{{ iv }}Values)
'''


def create_template_environment() -> Environment:
    env = Environment(
        loader=BaseLoader(),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=False,
    )
    env.filters["literal"] = repr
    return env


_ENVIRONMENT = create_template_environment()
_INSTANCE_TEMPLATE = _ENVIRONMENT.from_string(INSTANCE_TEMPLATE)


def render_enum(definition: EnumDefinition) -> str:
    """Expand the instance template for one enum definition."""
    return _INSTANCE_TEMPLATE.render(model=build_model(definition))


def format_file_header(package_name: str, invocation: tuple[str, ...]) -> list[str]:
    """Return the provenance comment, package docstring and fixed imports.

    Output format:
        # Code generated by "enumgen --types ColorEnum"; DO NOT EDIT.

        \"\"\"Enum types for the colors package.\"\"\"

        import json
        from types import MappingProxyType
        from typing import TypedDict
    """
    command = " ".join((TOOL_NAME, *invocation))
    return [
        f'# Code generated by "{command}"; DO NOT EDIT.',
        "",
        f'"""Enum types for the {package_name} package."""',
        "",
        "import json",
        "from types import MappingProxyType",
        "from typing import TypedDict",
    ]


def render_source(
    package_name: str,
    invocation: tuple[str, ...],
    definitions: list[EnumDefinition],
) -> str:
    """Assemble the header and one rendered block per definition, in order."""
    parts: list[str] = ["\n".join(format_file_header(package_name, invocation)) + "\n"]
    parts.append(SHARED_ERRORS)
    for definition in definitions:
        parts.append(render_enum(definition))
    return "".join(parts)


def generate(
    package: SourcePackage,
    type_names: tuple[str, ...],
    invocation: tuple[str, ...] = (),
) -> str:
    """Scan and render every requested type; returns unformatted source."""
    definitions: list[EnumDefinition] = []
    for type_name in type_names:
        definitions.extend(scan_package(package, type_name))
    return render_source(package.name, invocation, definitions)


# ===--- Output emitter ---=== #


def _warn(message: str) -> None:
    print(f"warning: {message}", file=sys.stderr)


def format_source(source: str, formatter: tuple[str, ...]) -> str:
    """Normalize generated source, falling back to the raw text on failure.

    The text is first checked to parse as Python, then piped through the
    formatter command (stdin to stdout) when one is configured. Any failure
    prints a warning to stderr and returns ``source`` unchanged.
    """
    try:
        ast.parse(source)
    except SyntaxError as err:
        _warn(f"internal error: invalid Python generated: {err}")
        _warn("import the output module to analyze the error")
        return source

    if not formatter:
        return source

    try:
        result = subprocess.run(
            list(formatter),
            input=source,
            check=True,
            capture_output=True,
            text=True,
        )
    except (subprocess.CalledProcessError, OSError) as err:
        _warn(f"formatter {formatter[0]!r} failed: {err}")
        _warn("writing unformatted output")
        return source
    return result.stdout


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing the generated module.

    Attributes:
        filename: Filename written, e.g. "enums.py".
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int


def write_output(path: Path, source: str) -> FileWriteResult:
    """Write the generated module, creating parent directories.

    Raises:
        OSError: Propagated directly if the filesystem write fails.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(source, encoding="utf-8")
    resolved = path.resolve()
    return FileWriteResult(
        filename=path.name,
        path=resolved,
        line_count=source.count("\n"),
        byte_count=len(resolved.read_bytes()),
    )


# ===--- Pipeline ---=== #


def run_generate(config: GenerateConfig) -> FileWriteResult:
    """Execute scan -> build -> render -> emit for a GenerateConfig.

    Nothing is written unless every requested type generates.

    Raises:
        GenerationError: Malformed tag, empty enum or reserved identifier.
        OSError: Source not readable or output not writable.
        SyntaxError: A source file is not valid Python.
    """
    print(f"Parsing: {config.package_dir}")
    package = load_package(config.package_dir, config.source_files)
    print(f"  Package: {package.name} ({len(package.files)} files)")

    definitions: list[EnumDefinition] = []
    for type_name in config.type_names:
        found = scan_package(package, type_name)
        element_count = sum(len(d.elements) for d in found)
        print(
            f"  Type {type_name}: {len(found)} definition(s), "
            f"{element_count} element(s)"
        )
        definitions.extend(found)

    source = render_source(package.name, config.invocation, definitions)
    source = format_source(source, config.formatter)

    result = write_output(config.output, source)
    print(f"  Written: {result.line_count} lines to {result.path}")
    return result


# ===--- Main generation ---=== #


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err

    try:
        run_generate(config)
    except GenerationError as err:
        print(f"Generation error [{err.code}]: {err.message}")
        raise SystemExit(1) from err
    except (OSError, SyntaxError) as err:
        print(f"Error: {err}")
        raise SystemExit(1) from err
    except TemplateError as err:
        print(f"Internal error: {err}")
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
