"""Render engine for notification templates using Jinja2.

Templates are rendered in a sandboxed environment: placeholders and simple
control blocks only, no access to Python internals. HTML bodies are
autoescaped so employee-supplied values (leave notes, denial reasons) cannot
inject markup, and ``StrictUndefined`` turns any unresolved placeholder into
a :class:`RenderError` instead of an empty string. Variables the registry
declares optional are pre-filled with None, which renders as empty text.
"""

import html
import logging
import re
import threading
from collections import OrderedDict
from typing import Any, Mapping

from jinja2 import PackageLoader, StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from .models import RenderedMessage, RenderError, Template

logger = logging.getLogger(__name__)

TEMPLATE_DIR = "email_templates"
TEMPLATE_SUFFIX = ".html.j2"
LAYOUT_TEMPLATE = "_layout" + TEMPLATE_SUFFIX
DEFAULT_CACHE_SIZE = 128


def _finalize(value: Any) -> Any:
    # Optional variables are filled with None; show them as empty text
    return "" if value is None else value


def html_to_text(html_body: str) -> str:
    """Derive the plain-text alternative from a rendered HTML body."""
    if not html_body:
        return ""

    text = re.sub(r"<(head|style|script)\b.*?</\1\s*>", "", html_body, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</(p|h[1-6]|tr|li|div|table)\s*>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</t[hd]\s*>", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    # Unescape only after tags are gone so escaped user input stays literal
    text = html.unescape(text)
    text = re.sub(r"[ \t]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


class TemplateRenderer:
    """Renders subject lines and HTML bodies from template source strings.

    Compiled templates are cached by source text, so a saved custom body is
    picked up on the next render without explicit invalidation. The cache
    holds at most ``cache_size`` entries and evicts the least recently used.
    """

    def __init__(self, template_dir: str = TEMPLATE_DIR, cache_size: int = DEFAULT_CACHE_SIZE):
        # The loader only serves the shared layout that bodies extend
        self.html_env = SandboxedEnvironment(
            loader=PackageLoader("hr_notify.notifications", template_dir),
            autoescape=True,
            undefined=StrictUndefined,
            finalize=_finalize,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Subjects are header text, not markup
        self.subject_env = SandboxedEnvironment(
            autoescape=False,
            undefined=StrictUndefined,
            finalize=_finalize,
        )
        self.cache_size = max(cache_size, 1)
        self._cache: "OrderedDict[tuple, Any]" = OrderedDict()
        self._lock = threading.Lock()

    def compile(self, source: str, subject: bool = False):
        """Compile ``source`` (cached).

        Raises:
            RenderError: If the source is not valid template markup
        """
        key = (subject, source)
        with self._lock:
            compiled = self._cache.get(key)
            if compiled is not None:
                self._cache.move_to_end(key)
                return compiled

        env = self.subject_env if subject else self.html_env
        try:
            compiled = env.from_string(source)
        except TemplateError as e:
            raise RenderError(f"Invalid template markup: {e}") from e

        with self._lock:
            self._cache[key] = compiled
            self._cache.move_to_end(key)
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return compiled

    def render(
        self,
        template: Template,
        context: Mapping[str, Any],
        subject_template: str,
    ) -> RenderedMessage:
        """Render ``template`` and ``subject_template`` with ``context``.

        Returns:
            RenderedMessage with single-line subject, HTML body and text body

        Raises:
            RenderError: On malformed markup, unresolved placeholders or
                sandbox violations
        """
        try:
            body = self.compile(template.body).render(context)
            subject = self.compile(subject_template, subject=True).render(context)
        except RenderError:
            raise
        except TemplateError as e:
            error_msg = f"Template '{template.name}' failed to render: {e}"
            logger.error(error_msg)
            raise RenderError(error_msg) from e
        except Exception as e:
            error_msg = f"Unexpected error rendering template '{template.name}': {e}"
            logger.error(error_msg, exc_info=True)
            raise RenderError(error_msg) from e

        subject = " ".join(subject.split())
        if not subject:
            raise RenderError(f"Template '{template.name}' rendered an empty subject")

        logger.debug(f"Rendered template {template.name} (custom={template.is_custom})")

        return RenderedMessage(
            subject=subject,
            html_body=body,
            text_body=html_to_text(body),
        )
