"""Loading and rendering of the HTML pages served to the browser.

Templates are Jinja2 files with HTML autoescaping enabled. Loading is
strict: a missing or unparsable file is a configuration error. Rendering
is best-effort: a failure while executing a template is reported alongside
whatever was produced up to that point, which is still served.
"""

from pathlib import Path
from typing import Any

from jinja2 import Environment, Template, TemplateError

from .config import ConfigError, ErrorKind

_environment = Environment(autoescape=True, keep_trailing_newline=True)


class TemplateLoadError(ConfigError):
    """A template file could not be read or parsed."""

    kind = ErrorKind.TEMPLATE_LOAD

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"could not load template {source!r}: {reason}")
        self.source = source
        self.reason = reason


class RenderError(Exception):
    """A template failed while executing against its data."""

    pass


def load_template(source: str | Path | None) -> Template:
    """Read and compile a template file.

    Args:
        source: Path to the template file

    Returns:
        The compiled template

    Raises:
        TemplateLoadError: If the file is missing, unreadable or invalid
    """
    if not source:
        raise TemplateLoadError("", "no template path given")

    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateLoadError(str(source), str(e)) from e

    try:
        template = _environment.from_string(text)
    except TemplateError as e:
        raise TemplateLoadError(str(source), str(e)) from e

    template.name = path.name
    return template


def compile_template(text: str, name: str = "") -> Template:
    """Compile template text that does not come from a file."""
    template = _environment.from_string(text)
    if name:
        template.name = name
    return template


def render(template: Template, **context: Any) -> tuple[str, RenderError | None]:
    """Render a template, tolerating failures during execution.

    The template is streamed chunk by chunk. If executing it raises, the
    output produced so far is returned together with the error.

    Args:
        template: Compiled template
        **context: Variables made available to the template

    Returns:
        The rendered (possibly partial) text and the render error, if any
    """
    chunks: list[str] = []
    try:
        for chunk in template.generate(**context):
            chunks.append(chunk)
    except Exception as e:
        name = template.name or "<string>"
        return "".join(chunks), RenderError(f"template {name}: {type(e).__name__}: {e}")
    return "".join(chunks), None
