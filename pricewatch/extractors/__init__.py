"""Extractor registry.

Extractors are auto-discovered from modules in this package. Any
`BaseExtractor` subclass with a `platform` attribute will be registered.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil

from ..models import Platform
from .base import BaseExtractor, ScrapeError

__all__ = [
    "BaseExtractor",
    "ScrapeError",
    "get_extractor",
    "get_all_extractors",
    "list_platforms",
]

logger = logging.getLogger(__name__)


def _discover_extractors() -> dict[Platform, type[BaseExtractor]]:
    discovered: dict[Platform, type[BaseExtractor]] = {}
    failures: dict[str, Exception] = {}

    # Walk sibling modules under this package (pricewatch.extractors.*).
    for module_info in pkgutil.iter_modules(__path__):  # type: ignore[name-defined]
        if module_info.ispkg:
            continue
        module_name = module_info.name
        if module_name.startswith("_") or module_name in {"base", "browser_pool"}:
            continue

        full_name = f"{__name__}.{module_name}"
        try:
            module = importlib.import_module(full_name)
        except Exception as exc:  # pragma: no cover - depends on optional modules
            failures[full_name] = exc
            continue

        for _, obj in inspect.getmembers(module, inspect.isclass):
            if obj is BaseExtractor or not issubclass(obj, BaseExtractor) or inspect.isabstract(obj):
                continue
            platform = getattr(obj, "platform", None)
            if not isinstance(platform, Platform):
                continue

            if platform in discovered and discovered[platform] is not obj:
                logger.warning(
                    "Duplicate extractor for %s: %s.%s and %s.%s (keeping first)",
                    platform.value,
                    discovered[platform].__module__,
                    discovered[platform].__name__,
                    obj.__module__,
                    obj.__name__,
                )
                continue
            discovered[platform] = obj

    for mod, exc in failures.items():
        logger.warning("Failed to import extractor module %s: %r", mod, exc)

    return dict(sorted(discovered.items(), key=lambda kv: kv[0].value))


EXTRACTORS: dict[Platform, type[BaseExtractor]] = _discover_extractors()


def get_extractor(platform: Platform | str) -> BaseExtractor | None:
    """Get an extractor instance for a platform, or None if unsupported."""
    cls = EXTRACTORS.get(Platform.from_value(platform))
    return cls() if cls else None


def get_all_extractors() -> dict[Platform, BaseExtractor]:
    """Get instances of all registered extractors keyed by platform."""
    return {platform: cls() for platform, cls in EXTRACTORS.items()}


def list_platforms() -> list[Platform]:
    """List platforms that have an extractor."""
    return list(EXTRACTORS.keys())
