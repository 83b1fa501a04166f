"""Render-context construction for email templates.

Business logic hands the dispatcher a loosely structured mapping
(``employee``, ``manager``, ``leaveRequest``...). This module resolves
dotted paths into it and turns it into the context the templates expect:
defaults applied, dates formatted, optional variables present, and the
company block merged in.
"""

from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping

from hr_notify.config.models import CompanyConfig
from hr_notify.utils.timestamps import format_date

if TYPE_CHECKING:
    from .registry import EventSpec


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def resolve_path(context: Mapping[str, Any], path: str, default: Any = MISSING) -> Any:
    """Return the value at dotted ``path`` in nested mappings, or ``default``.

    Example:
        >>> resolve_path({"employee": {"name": "A. Muster"}}, "employee.name")
        'A. Muster'
    """
    current: Any = context
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def _set_path(context: Dict[str, Any], path: str, value: Any, overwrite: bool) -> None:
    *parents, leaf = path.split(".")
    current = context
    for part in parents:
        child = current.get(part)
        if not isinstance(child, dict):
            # Mappings from callers may be read-only; replace with a dict copy
            child = dict(child) if isinstance(child, Mapping) else {}
            current[part] = child
        current = child
    if overwrite or leaf not in current:
        current[leaf] = value


def copy_context(value: Any) -> Any:
    """Deep copy of a caller context; every nested mapping becomes a plain dict."""
    if isinstance(value, Mapping):
        return {key: copy_context(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [copy_context(item) for item in value]
    return value


def fill_optional(context: Dict[str, Any], paths: Iterable[str]) -> None:
    """Ensure every optional path exists (as None) so strict rendering succeeds."""
    for path in paths:
        _set_path(context, path, None, overwrite=False)


def format_dates(context: Dict[str, Any], paths: Iterable[str], date_format: str) -> None:
    for path in paths:
        value = resolve_path(context, path)
        if value is not MISSING and value is not None:
            _set_path(context, path, format_date(value, date_format), overwrite=True)


def company_block(company: CompanyConfig) -> Dict[str, str]:
    return {
        "name": company.name,
        "address": company.address,
        "website": company.website,
        "logo": company.logo_url,
    }


def build_render_context(
    spec: "EventSpec",
    context: Mapping[str, Any],
    company: CompanyConfig,
    date_format: str = "%d.%m.%Y",
) -> Dict[str, Any]:
    """Build the template context for ``spec`` from a validated caller context.

    The caller's mapping is never modified.

    Args:
        spec: Registry entry being rendered
        context: Caller context with defaults already applied
        company: Company block merged in as ``company``
        date_format: strftime format for the spec's date fields

    Returns:
        New dict ready to pass to the render engine
    """
    render_context = copy_context(context)

    format_dates(render_context, spec.date_fields, date_format)
    fill_optional(render_context, spec.optional)
    render_context["company"] = company_block(company)

    return render_context
