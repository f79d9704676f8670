from typing import Mapping, Optional

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from bqv_core.errors import ConfigError


def _environment() -> Environment:
    # Rendered text is compared verbatim with what BigQuery stores, so nothing
    # may be trimmed or escaped.
    return Environment(
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
        trim_blocks=False,
        lstrip_blocks=False,
    )


def render_query(
    template: str,
    params: Optional[Mapping[str, str]] = None,
    dataset: Optional[str] = None,
    view: Optional[str] = None,
) -> str:
    """Expand a SQL template against the invocation's parameters.

    Placeholders use Jinja2 syntax (``{{ project }}``). A placeholder that is
    not in *params* is an error rather than an empty substitution.
    """
    env = _environment()
    try:
        compiled = env.from_string(template)
    except TemplateSyntaxError as e:
        raise ConfigError(f"Template syntax error at line {e.lineno}: {e.message}", dataset=dataset, view=view) from e
    try:
        return compiled.render(**dict(params or {}))
    except UndefinedError as e:
        raise ConfigError(f"Template parameter missing: {e.message}", dataset=dataset, view=view) from e
