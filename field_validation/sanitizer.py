"""Sanitization used by the ``sanitize`` rule."""

import logging
from typing import Any, Dict, Iterable, Optional

import bleach

logger = logging.getLogger(__name__)


class Sanitizer:
    """
    Trims a value and neutralises markup with bleach.

    Tags outside the allow-list are escaped (or removed when strip is set),
    so ``<script>alert(1)</script>`` becomes harmless text. The output is
    HTML: a bare ``&`` in plain text is escaped too (``"Tom & Jerry"`` becomes
    ``"Tom &amp; Jerry"``), so unescape it before showing it anywhere but a page.
    """

    def __init__(
        self,
        tags: Optional[Iterable[str]] = None,
        attributes: Optional[Dict[str, Any]] = None,
        strip: bool = False,
    ):
        self.tags = frozenset(tags) if tags is not None else bleach.ALLOWED_TAGS
        self.attributes = attributes if attributes is not None else bleach.ALLOWED_ATTRIBUTES
        self.strip = strip

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "Sanitizer":
        """Build from the ``sanitize`` section of local-config.yaml."""
        config = config or {}
        return cls(
            tags=config.get("tags"),
            attributes=config.get("attributes"),
            strip=config.get("strip", False),
        )

    def __call__(self, value: Any) -> Any:
        if not value:
            return value

        cleaned = bleach.clean(
            str(value).strip(),
            tags=self.tags,
            attributes=self.attributes,
            strip=self.strip,
        )
        logger.debug(
            "Value sanitized",
            extra={"original_length": len(str(value)), "sanitized_length": len(cleaned)},
        )
        return cleaned
