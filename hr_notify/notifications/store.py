"""Two-tier template store.

Every registered template name has an immutable default body shipped with
the package under ``email_templates/``. An administrator may save a custom
body for a name; the custom body then wins on lookup until it is reset,
after which the shipped default is served again byte for byte.

Custom bodies live in an override backend. :class:`InMemoryOverrideStore`
keeps them for the lifetime of the process;
:class:`hr_notify.persistence.DatabaseOverrideStore` keeps them in the
``custom_templates`` table.
"""

import threading
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Protocol

from jinja2 import PackageLoader

from hr_notify.logging import get_logger

from .models import Template, UnknownTemplate
from .templates import TEMPLATE_DIR, TEMPLATE_SUFFIX, TemplateRenderer

logger = get_logger(__name__, component="templates")


class OverrideStore(Protocol):
    """Storage for custom template bodies keyed by template name."""

    def get(self, name: str) -> Optional[str]:
        ...

    def put(self, name: str, body: str) -> None:
        ...

    def delete(self, name: str) -> bool:
        ...

    def names(self) -> List[str]:
        ...


class InMemoryOverrideStore:
    """Process-local override backend."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._bodies: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, name: str) -> Optional[str]:
        with self._lock:
            return self._bodies.get(name)

    def put(self, name: str, body: str) -> None:
        with self._lock:
            self._bodies[name] = body

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._bodies.pop(name, None) is not None

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._bodies)


def load_default_templates(
    package: str = "hr_notify.notifications",
    template_dir: str = TEMPLATE_DIR,
) -> Mapping[str, str]:
    """Read the shipped default bodies from package resources.

    Files starting with ``_`` (the shared layout) are not templates in
    their own right and are skipped.

    Returns:
        Read-only mapping of template name to body source
    """
    loader = PackageLoader(package, template_dir)
    defaults: Dict[str, str] = {}

    for filename in loader.list_templates():
        if filename.startswith("_") or not filename.endswith(TEMPLATE_SUFFIX):
            continue
        # PackageLoader.get_source ignores the environment argument
        source, _, _ = loader.get_source(None, filename)
        defaults[filename[: -len(TEMPLATE_SUFFIX)]] = source

    return MappingProxyType(defaults)


class TemplateStore:
    """Default and custom template bodies with reset-to-default.

    Args:
        renderer: Used to compile bodies on save so invalid markup is
            rejected before it can break a later dispatch
        overrides: Custom body backend (in-memory if omitted)
        defaults: Default bodies (loaded from package resources if omitted)
    """

    def __init__(
        self,
        renderer: Optional[TemplateRenderer] = None,
        overrides: Optional[OverrideStore] = None,
        defaults: Optional[Mapping[str, str]] = None,
    ):
        self.renderer = renderer or TemplateRenderer()
        self.overrides = overrides if overrides is not None else InMemoryOverrideStore()
        self._defaults = MappingProxyType(dict(defaults)) if defaults is not None else load_default_templates()

        logger.debug(f"Template store initialized with {len(self._defaults)} default templates")

    @property
    def default_names(self) -> List[str]:
        return sorted(self._defaults)

    def get_default(self, name: str) -> Template:
        if name not in self._defaults:
            raise UnknownTemplate(name)
        return Template(name=name, body=self._defaults[name], is_custom=False)

    def get(self, name: str) -> Template:
        """Return the effective template for ``name``.

        Raises:
            UnknownTemplate: If there is neither a custom nor a default body
        """
        custom = self.overrides.get(name)
        if custom is not None:
            return Template(name=name, body=custom, is_custom=True)
        return self.get_default(name)

    def save(self, name: str, body: str) -> Template:
        """Create or overwrite the custom body for ``name``.

        Raises:
            UnknownTemplate: If ``name`` has no default template
            RenderError: If ``body`` does not compile
        """
        if name not in self._defaults:
            raise UnknownTemplate(name)

        self.renderer.compile(body)
        self.overrides.put(name, body)

        logger.info(
            f"Saved custom template {name}",
            extra={"event": "template.saved", "template": name, "size": len(body)},
        )
        return Template(name=name, body=body, is_custom=True)

    def reset_to_default(self, name: str) -> bool:
        """Drop the custom body for ``name``.

        Returns:
            True if a custom body was removed, False if there was none

        Raises:
            UnknownTemplate: If ``name`` has no default template
        """
        if name not in self._defaults:
            raise UnknownTemplate(name)

        removed = self.overrides.delete(name)
        if removed:
            logger.info(
                f"Reset template {name} to default",
                extra={"event": "template.reset", "template": name},
            )
        return removed

    def list(self) -> List[Template]:
        """All template names with their effective body and ``is_custom`` flag."""
        return [self.get(name) for name in self.default_names]

    def custom_names(self) -> List[str]:
        return [name for name in self.overrides.names() if name in self._defaults]
