"""Build the catalog client and classifier from settings."""

from __future__ import annotations

from typing import Tuple

from feeddeck.classify.shorts import ShortClassifier
from feeddeck.config import Settings
from feeddeck.connectors.youtube import YouTubeCatalog


def build_clients(settings: Settings) -> Tuple[YouTubeCatalog, ShortClassifier]:
    """Return (catalog, classifier) configured from settings.

    Both own their HTTP sessions once entered with `async with`.
    """
    catalog = YouTubeCatalog(
        settings.require_api_key(),
        base_url=settings.api_url,
        request_timeout=float(settings.request_timeout_seconds),
    )
    classifier = ShortClassifier(
        base_url=settings.shorts_url,
        timeout=float(settings.probe_timeout_seconds),
    )
    return catalog, classifier
