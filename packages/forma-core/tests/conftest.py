"""Shared pytest fixtures for forma-core tests.

This module provides common fixtures used across unit and integration
tests: structlog capture, platform documents, and on-disk platform tiers.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
import sys
from typing import Any

import pytest
import structlog
import yaml

from forma_core.compiler.platform_resolver import PlatformResolver


@pytest.fixture(autouse=True)
def configure_structlog_for_tests() -> None:
    """Configure structlog to output to stdout for test capture.

    This fixture ensures structlog outputs to stdout so that capsys
    can capture the output in tests.
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,  # Important for test isolation
    )


@pytest.fixture
def html_document() -> dict[str, Any]:
    """Return a small html platform document.

    Returns:
        Dictionary representing a valid platform document.
    """
    return {
        "name": "html",
        "elements": {
            "button": {"element": "button", "content_source": "text"},
            "heading": {
                "element": "h2",
                "element_by_prop": {"level": {1: "h1", 2: "h2"}},
                "content_source": "text",
            },
            "text": {"element": "p", "content_source": "text"},
            "container": {"element": "div"},
            "link": {"element": "a", "content_source": "text", "attr_map": {"url": "href"}},
        },
        "extractors": {
            "styles": {
                "type": "property-selector",
                "keys": ["background", "padding", "color"],
            },
            "attributes": {
                "type": "attribute-selector",
                "keys": ["id", "href", "title"],
            },
        },
        "output_formats": {"html-string": {}, "hiccup": {}},
        "default_output_format": "html-string",
    }


@pytest.fixture
def htmx_document() -> dict[str, Any]:
    """Return an htmx platform document extending html."""
    return {
        "name": "htmx",
        "extends": "html",
        "extractors": {
            "attributes": {
                "type": "attribute-selector",
                "keys": ["hx-get", "hx-post", "hx-target"],
                "sugar": {"swap": {"replace": "outerHTML"}},
                "output_key": "hx-swap",
            },
        },
        "component_mappings": {
            "button": {
                "mappings": {"on_click": "hx-post"},
                "default_attrs": {"hx-swap": "outerHTML"},
            },
        },
    }


@pytest.fixture
def resolver(html_document: dict[str, Any], htmx_document: dict[str, Any]) -> PlatformResolver:
    """Resolver over in-memory html and htmx documents only."""
    resolver = PlatformResolver(include_builtin=False, project=None)
    resolver.register(html_document)
    resolver.register(htmx_document)
    return resolver


def _write_platform(directory: Path, document: dict[str, Any]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{document['name']}.yaml"
    path.write_text(yaml.safe_dump(document, sort_keys=False))
    return path


@pytest.fixture
def platform_root(
    tmp_path: Path,
    html_document: dict[str, Any],
    htmx_document: dict[str, Any],
) -> Path:
    """Three-tier layout with html in default/ and htmx in library/.

    Returns:
        Root directory of the tiers.
    """
    _write_platform(tmp_path / "default" / "platforms", html_document)
    _write_platform(tmp_path / "library" / "platforms", htmx_document)
    return tmp_path


@pytest.fixture
def write_platform() -> Callable[[Path, dict[str, Any]], Path]:
    """Return a helper that writes a platform document as YAML."""
    return _write_platform
