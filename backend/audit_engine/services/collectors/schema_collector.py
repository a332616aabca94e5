"""
Schema Collector - Extract JSON-LD structured data from HTML.
"""
import json
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup

from audit_engine.logger import logger


@dataclass
class SchemaItem:
    """Single JSON-LD schema block."""
    type: str
    data: dict
    valid: bool = True
    error: Optional[str] = None


@dataclass
class SchemaData:
    """All structured data from page."""
    scripts: int = 0
    schemas: List[SchemaItem] = field(default_factory=list)

    @property
    def types(self) -> List[str]:
        return [s.type for s in self.schemas if s.valid]

    def has_type(self, *names: str) -> bool:
        return any(name in t for t in self.types for name in names)

    @property
    def has_any(self) -> bool:
        return self.scripts > 0


class SchemaCollector:
    """Collector for JSON-LD structured data."""

    def collect(self, html: str, soup: Optional[BeautifulSoup] = None) -> SchemaData:
        """Extract all JSON-LD schemas from HTML.

        Unparseable blocks are kept as invalid items so callers can tell
        "has markup" apart from "has usable markup".
        """
        soup = soup or BeautifulSoup(html or "", "html.parser")
        scripts = soup.find_all("script", type="application/ld+json")
        schema_data = SchemaData(scripts=len(scripts))

        for script in scripts:
            text = script.string or script.get_text()
            if not text or not text.strip():
                continue
            try:
                data = json.loads(text)
            except json.JSONDecodeError as e:
                logger.debug(f"Invalid JSON-LD: {e}")
                schema_data.schemas.append(SchemaItem(
                    type="unknown",
                    data={},
                    valid=False,
                    error=f"Invalid JSON: {str(e)[:100]}"
                ))
                continue

            # Handle @graph arrays and top-level lists
            if isinstance(data, dict) and "@graph" in data:
                items = data["@graph"] if isinstance(data["@graph"], list) else [data["@graph"]]
            elif isinstance(data, list):
                items = data
            else:
                items = [data]

            for item in items:
                schema_data.schemas.append(self._parse_schema(item))

        return schema_data

    def _parse_schema(self, data) -> SchemaItem:
        if not isinstance(data, dict):
            return SchemaItem(type="unknown", data={}, valid=False, error="Not an object")

        schema_type = data.get("@type", "Unknown")
        if isinstance(schema_type, list):
            schema_type = ", ".join(str(t) for t in schema_type) or "Unknown"

        return SchemaItem(type=str(schema_type), data=data, valid=True)
