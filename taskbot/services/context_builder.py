"""Codebase context for the completion service.

Indexes a project checkout once and renders it as plain text:

- ``ai-context/*.md``: business context documents, included verbatim
- ``src/api/<api>/content-types/<type>/schema.json``: content types
  (fields, relations, enumerations)
- ``src/api/<api>/routes/01-*`` / ``02-*``: custom route definitions
"""

import asyncio
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import aiofiles
import aiofiles.os

from ..utils.logger import get_app_logger

logger = get_app_logger("context")

ROUTE_PATTERN = re.compile(
    r"""method:\s*['"](\w+)['"].*?path:\s*['"]([^'"]+)['"].*?handler:\s*['"]([^'"]+)['"]""",
    re.DOTALL,
)
CUSTOM_ROUTE_PREFIXES = ("01-", "02-")
# Area context shorter than this is too thin to be useful
MIN_AREA_CONTEXT_CHARS = 200


@dataclass
class Relation:
    attribute: str
    kind: str
    target: str


@dataclass
class ContentType:
    """Summary of one content-type schema."""

    name: str
    kind: str
    collection_name: str
    fields: List[str] = field(default_factory=list)
    relations: List[Relation] = field(default_factory=list)
    enums: Dict[str, List[str]] = field(default_factory=dict)

    def render(self) -> str:
        lines = [f"## {self.name} ({self.kind})"]
        if self.fields:
            lines.append(f"Fields: {', '.join(self.fields)}")
        if self.relations:
            rendered = ", ".join(f"{r.attribute} → {r.target} ({r.kind})" for r in self.relations)
            lines.append(f"Relations: {rendered}")
        if self.enums:
            rendered = ", ".join(f"{name}: [{'|'.join(values)}]" for name, values in self.enums.items())
            lines.append(f"Enums: {rendered}")
        return "\n".join(lines)


@dataclass
class Route:
    method: str
    path: str
    handler: str


@dataclass
class CodebaseIndex:
    content_types: List[ContentType] = field(default_factory=list)
    routes: Dict[str, List[Route]] = field(default_factory=dict)
    documents: List[str] = field(default_factory=list)


def parse_schema(name: str, raw: str) -> ContentType:
    """
    Summarize a content-type schema document.

    Raises:
        ValueError: If the document is not valid JSON
        KeyError / AttributeError: If required sections are missing
    """
    schema = json.loads(raw)
    content_type = ContentType(
        name=name,
        kind=schema.get("kind", "collectionType"),
        collection_name=schema.get("collectionName", name),
    )

    for field_name, attr in schema["attributes"].items():
        attr_type = attr.get("type", "unknown")
        if attr_type == "relation" and attr.get("target"):
            # "api::show.show" -> "show"
            target = attr["target"].replace("api::", "").split(".")[0]
            content_type.relations.append(Relation(field_name, attr.get("relation", "unknown"), target))
        elif attr_type == "enumeration" and attr.get("enum"):
            content_type.enums[field_name] = [str(v) for v in attr["enum"]]
        else:
            content_type.fields.append(f"{field_name}: {attr_type}")

    return content_type


def parse_routes(source: str) -> List[Route]:
    return [Route(*match) for match in ROUTE_PATTERN.findall(source)]


def _normalize_area(area: str) -> str:
    return re.sub(r"\s+", "-", area.strip().lower())


def _matches(name: str, areas: Sequence[str]) -> bool:
    name = name.lower()
    return any(area and (area in name or name in area) for area in areas)


class CodebaseContextBuilder:
    """Lazily built, cached index of a project checkout."""

    def __init__(self, project_path: Union[str, Path]):
        self.project_path = Path(project_path)
        self._index: Optional[CodebaseIndex] = None
        self._lock = asyncio.Lock()

    async def get_index(self) -> CodebaseIndex:
        if self._index is not None:
            return self._index

        async with self._lock:
            if self._index is None:
                logger.info(f"Indexing codebase at {self.project_path}")
                index = CodebaseIndex(
                    content_types=await self._index_content_types(),
                    routes=await self._index_routes(),
                    documents=await self._load_documents(),
                )
                logger.info(
                    f"Indexed {len(index.content_types)} content types, "
                    f"{len(index.routes)} APIs with custom routes, {len(index.documents)} context docs"
                )
                self._index = index
        return self._index

    def invalidate(self) -> None:
        """Drop the cached index; the next build re-reads the checkout."""
        self._index = None

    async def build_for_areas(self, areas: Sequence[str]) -> str:
        """
        Context for a set of affected areas.

        Includes the business documents, content types whose name matches an
        area (substring either way), content types they relate to, and the
        matching APIs' custom routes.
        """
        index = await self.get_index()
        normalized = [_normalize_area(area) for area in areas]

        direct = [ct for ct in index.content_types if _matches(ct.name, normalized)]
        direct_names = {ct.name for ct in direct}
        related_names = {rel.target for ct in direct for rel in ct.relations}
        related = [
            ct for ct in index.content_types
            if ct.name in related_names and ct.name not in direct_names
        ]
        routes = {api: r for api, r in index.routes.items() if _matches(api, normalized)}

        sections: List[str] = []
        business = self._business_section(index)
        if business:
            sections.append(business)

        if direct:
            sections.append("# Directly Affected Content Types\n")
            sections.extend(ct.render() for ct in direct)

        if related:
            sections.append("\n# Related Content Types (via relations)\n")
            sections.extend(ct.render() for ct in related)

        if routes:
            sections.append("\n# Custom Routes\n")
            sections.extend(self._render_routes(routes, heading="##"))

        return "\n".join(sections)

    async def build_full_summary(self) -> str:
        index = await self.get_index()
        sections = ["# Project Summary\n"]

        business = self._business_section(index)
        if business:
            sections.append(business)

        sections.append("## All Content Types\n")
        for ct in index.content_types:
            sections.append(ct.render())
            sections.append("")

        sections.append("\n## All Custom Routes\n")
        sections.extend(self._render_routes(index.routes, heading="###"))

        return "\n".join(sections)

    async def build_for_request(self, areas: Sequence[str]) -> str:
        """Area context, falling back to the full summary when it is missing or too thin."""
        if areas:
            context = await self.build_for_areas(areas)
            if len(context) >= MIN_AREA_CONTEXT_CHARS:
                return context
        return await self.build_full_summary()

    @staticmethod
    def _business_section(index: CodebaseIndex) -> str:
        if not index.documents:
            return ""
        parts = ["# Business Context\n"]
        for doc in index.documents:
            parts.append(doc)
            parts.append("")
        return "\n".join(parts)

    @staticmethod
    def _render_routes(routes: Dict[str, List[Route]], heading: str) -> List[str]:
        lines = []
        for api, api_routes in routes.items():
            lines.append(f"{heading} {api}")
            lines.extend(f"  {r.method} {r.path} → {r.handler}" for r in api_routes)
            lines.append("")
        return lines

    # === Indexing ===

    @property
    def _api_dir(self) -> Path:
        return self.project_path / "src" / "api"

    async def _list_dir(self, path: Path) -> List[str]:
        if not await aiofiles.os.path.isdir(path):
            return []
        return sorted(await aiofiles.os.listdir(path))

    async def _read_text(self, path: Path) -> Optional[str]:
        try:
            async with aiofiles.open(path, mode='r', encoding='utf-8') as f:
                return await f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read {path}: {e}")
            return None

    async def _index_content_types(self) -> List[ContentType]:
        apis = await self._list_dir(self._api_dir)
        if not apis:
            logger.warning(f"No API directory found at {self._api_dir}")

        content_types = []
        for api in apis:
            types_dir = self._api_dir / api / "content-types"
            for type_name in await self._list_dir(types_dir):
                schema_path = types_dir / type_name / "schema.json"
                if not await aiofiles.os.path.isfile(schema_path):
                    continue
                raw = await self._read_text(schema_path)
                if raw is None:
                    continue
                try:
                    content_types.append(parse_schema(type_name, raw))
                except (ValueError, KeyError, AttributeError) as e:
                    logger.warning(f"Failed to parse schema for {api}/{type_name}: {e}")
        return content_types

    async def _index_routes(self) -> Dict[str, List[Route]]:
        routes: Dict[str, List[Route]] = {}
        for api in await self._list_dir(self._api_dir):
            routes_dir = self._api_dir / api / "routes"
            for filename in await self._list_dir(routes_dir):
                if not filename.startswith(CUSTOM_ROUTE_PREFIXES):
                    continue
                source = await self._read_text(routes_dir / filename)
                parsed = parse_routes(source) if source else []
                if parsed:
                    routes.setdefault(api, []).extend(parsed)
        return routes

    async def _load_documents(self) -> List[str]:
        context_dir = self.project_path / "ai-context"
        filenames = [f for f in await self._list_dir(context_dir) if f.endswith(".md")]
        if not filenames:
            logger.warning(f"No ai-context documents found in {self.project_path}")

        documents = []
        for filename in filenames:
            content = await self._read_text(context_dir / filename)
            if content is not None:
                documents.append(content)
        return documents
