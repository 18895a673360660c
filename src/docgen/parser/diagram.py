"""BPMN diagram directive.

``::bpmn{src="flows/order.bpmn" width="1000" height="700"}`` (or the
``:::bpmn`` container form) is replaced by an inline SVG rendering of the
referenced BPMN 2.0 file. Failures become a visible error block unless the
compile was asked not to fall back, in which case DiagramError propagates.

Rendered SVGs are cached per resolved path. The cache is injectable; the
default is a process-wide TTL cache.
"""

from __future__ import annotations

import html
import logging
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from jinja2 import BaseLoader, Environment, select_autoescape
from markupsafe import Markup
from markdown_it.token import Token

from ..config import (
    DEFAULT_DIAGRAM_HEIGHT,
    DEFAULT_DIAGRAM_WIDTH,
    DEFAULT_DIAGRAM_ZOOM,
    DIAGRAM_CACHE_TTL_SECONDS,
    MAX_DIAGRAM_FILE_SIZE,
    resolve_base_path,
)
from .directives import CONTAINER, LEAF, directive_kind, find_close

if TYPE_CHECKING:
    from .markdown import CompileContext, CompileOptions

log = logging.getLogger(__name__)

MISSING_SRC_MESSAGE = 'BPMN directive missing required "src" attribute'

CONTAINER_CLASSES = ("bpmn-diagram", "ornl-theme", "bpmn-container")

# ORNL palette
PRIMARY_COLOR = "#00662C"
SECONDARY_COLOR = "#FE5000"
TEXT_COLOR = "#1F2937"
BACKGROUND_COLOR = "#FFFFFF"

BPMN_NS = "http://www.omg.org/spec/BPMN/20100524/MODEL"
BPMNDI_NS = "http://www.omg.org/spec/BPMN/20100524/DI"
DC_NS = "http://www.omg.org/spec/DD/20100524/DC"
DI_NS = "http://www.omg.org/spec/DD/20100524/DI"

_EVENTS = {
    "startEvent",
    "endEvent",
    "intermediateCatchEvent",
    "intermediateThrowEvent",
    "boundaryEvent",
}
_GATEWAYS = {
    "exclusiveGateway",
    "parallelGateway",
    "inclusiveGateway",
    "eventBasedGateway",
    "complexGateway",
}
_ACTIVITIES = {
    "task",
    "userTask",
    "serviceTask",
    "scriptTask",
    "manualTask",
    "sendTask",
    "receiveTask",
    "businessRuleTask",
    "subProcess",
    "callActivity",
}

# Shape sizes used by the automatic layout
_AUTO_SIZES = {"event": (36.0, 36.0), "gateway": (50.0, 50.0), "activity": (100.0, 80.0)}
_AUTO_COLUMN_GAP = 150.0
_AUTO_ROW_GAP = 120.0
_PADDING = 20.0


class DiagramError(Exception):
    """Raised when a diagram cannot be loaded, validated or rendered."""

    pass


# ─────────────────────────────────────────────────────────────────────────────
# Cache
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RenderedDiagram:
    """A rendered diagram, independent of display size."""

    svg: str
    process_id: str
    file_size: int


class DiagramCache(Protocol):
    """Rendered-diagram store keyed by resolved absolute path."""

    def get(self, key: str) -> RenderedDiagram | None: ...

    def put(self, key: str, value: RenderedDiagram) -> None: ...

    def evict(self, key: str | None = None) -> None: ...


class TTLDiagramCache:
    """In-memory cache whose entries expire after a fixed age.

    Unbounded in entry count. Concurrent misses on the same key may render
    twice; the last put wins and the value is the same either way.
    """

    def __init__(
        self,
        ttl_seconds: float = DIAGRAM_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, RenderedDiagram]] = {}

    def get(self, key: str) -> RenderedDiagram | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return value

    def put(self, key: str, value: RenderedDiagram) -> None:
        self._entries[key] = (self._clock(), value)

    def evict(self, key: str | None = None) -> None:
        """Drop one entry, or everything when key is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def stats(self) -> dict:
        """Entry count and per-entry details, for debugging."""
        return {
            "size": len(self._entries),
            "entries": [
                {"file_path": key, "stored_at": stored_at, "file_size": value.file_size}
                for key, (stored_at, value) in self._entries.items()
            ],
        }


class NullDiagramCache:
    """A cache that never stores anything."""

    def get(self, key: str) -> RenderedDiagram | None:
        return None

    def put(self, key: str, value: RenderedDiagram) -> None:
        pass

    def evict(self, key: str | None = None) -> None:
        pass


default_diagram_cache = TTLDiagramCache()


# ─────────────────────────────────────────────────────────────────────────────
# BPMN model
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class _Shape:
    id: str
    kind: str  # event, gateway, activity
    label: str
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    element: str = ""

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2


@dataclass
class _Edge:
    id: str
    source: str
    target: str
    points: list[tuple[float, float]] = field(default_factory=list)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _namespace(tag: str) -> str:
    return tag[1:].split("}", 1)[0] if tag.startswith("{") else ""


def validate_bpmn(data: bytes) -> ET.Element:
    """Parse BPMN XML and check its basic structure.

    Raises:
        DiagramError: If the XML is malformed, the root is not
            ``bpmn:definitions``, or there is no process or collaboration.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise DiagramError(f"Invalid BPMN: XML is not well-formed ({e})") from e

    if _local(root.tag) != "definitions" or _namespace(root.tag) != BPMN_NS:
        raise DiagramError("Invalid BPMN: root element must be bpmn:definitions")

    if not any(_local(child.tag) in ("process", "collaboration") for child in root):
        raise DiagramError("Invalid BPMN: no process or collaboration element found")

    return root


def _process_id(root: ET.Element) -> str:
    for wanted in ("process", "collaboration"):
        for child in root:
            if _local(child.tag) == wanted:
                return child.get("id", "")
    return ""


def _collect(root: ET.Element) -> tuple[dict[str, _Shape], list[_Edge]]:
    shapes: dict[str, _Shape] = {}
    edges: list[_Edge] = []
    for element in root.iter():
        name = _local(element.tag)
        if _namespace(element.tag) != BPMN_NS:
            continue
        element_id = element.get("id")
        if not element_id:
            continue
        if name in _EVENTS:
            kind = "event"
        elif name in _GATEWAYS:
            kind = "gateway"
        elif name in _ACTIVITIES:
            kind = "activity"
        elif name == "sequenceFlow":
            edges.append(_Edge(element_id, element.get("sourceRef", ""), element.get("targetRef", "")))
            continue
        else:
            continue
        shapes[element_id] = _Shape(element_id, kind, element.get("name", ""), element=name)
    return shapes, edges


def _apply_interchange(root: ET.Element, shapes: dict[str, _Shape], edges: list[_Edge]) -> bool:
    """Copy diagram-interchange bounds and waypoints onto the model.

    Returns:
        True if every shape received bounds.
    """
    edges_by_id = {edge.id: edge for edge in edges}
    placed: set[str] = set()

    for shape_el in root.iter(f"{{{BPMNDI_NS}}}BPMNShape"):
        shape = shapes.get(shape_el.get("bpmnElement", ""))
        bounds = shape_el.find(f"{{{DC_NS}}}Bounds")
        if shape is None or bounds is None:
            continue
        shape.x = float(bounds.get("x", 0))
        shape.y = float(bounds.get("y", 0))
        shape.width = float(bounds.get("width", 0))
        shape.height = float(bounds.get("height", 0))
        placed.add(shape.id)

    for edge_el in root.iter(f"{{{BPMNDI_NS}}}BPMNEdge"):
        edge = edges_by_id.get(edge_el.get("bpmnElement", ""))
        if edge is None:
            continue
        edge.points = [
            (float(point.get("x", 0)), float(point.get("y", 0)))
            for point in edge_el.findall(f"{{{DI_NS}}}waypoint")
        ]

    return bool(shapes) and placed == set(shapes)


def _auto_layout(shapes: dict[str, _Shape], edges: list[_Edge]) -> None:
    """Lay shapes out left to right by distance from the start events."""
    outgoing: dict[str, list[str]] = {shape_id: [] for shape_id in shapes}
    incoming: dict[str, int] = {shape_id: 0 for shape_id in shapes}
    for edge in edges:
        if edge.source in shapes and edge.target in shapes:
            outgoing[edge.source].append(edge.target)
            incoming[edge.target] += 1

    roots = [sid for sid, shape in shapes.items() if shape.element == "startEvent"]
    roots += [sid for sid in shapes if incoming[sid] == 0 and sid not in roots]

    column: dict[str, int] = {}
    queue = list(roots)
    for sid in roots:
        column[sid] = 0
    while queue:
        current = queue.pop(0)
        for target in outgoing[current]:
            if target not in column:
                column[target] = column[current] + 1
                queue.append(target)
    # Shapes only reachable through cycles
    for sid in shapes:
        column.setdefault(sid, 0)

    rows: dict[int, int] = {}
    for sid, shape in shapes.items():
        col = column[sid]
        row = rows.get(col, 0)
        rows[col] = row + 1
        width, height = _AUTO_SIZES[shape.kind]
        shape.width, shape.height = width, height
        slot_x = _PADDING + col * _AUTO_COLUMN_GAP
        slot_y = _PADDING + row * _AUTO_ROW_GAP
        shape.x = slot_x + (100.0 - width) / 2
        shape.y = slot_y + (80.0 - height) / 2

    for edge in edges:
        source, target = shapes.get(edge.source), shapes.get(edge.target)
        if source and target:
            edge.points = [(source.x + source.width, source.cy), (target.x, target.cy)]


# ─────────────────────────────────────────────────────────────────────────────
# Templates
# ─────────────────────────────────────────────────────────────────────────────

SVG_TEMPLATE = """\
<svg xmlns="http://www.w3.org/2000/svg" class="bpmn-svg" width="100%" height="100%" \
viewBox="{{ view_box }}" preserveAspectRatio="xMidYMid meet" role="img" aria-label="BPMN process {{ process_id }}">
<defs><marker id="{{ marker_id }}" viewBox="0 0 10 10" refX="10" refY="5" markerWidth="8" markerHeight="8" orient="auto">\
<path d="M0,0 L10,5 L0,10 z" fill="{{ colors.primary }}"/></marker></defs>
{% for edge in edges if edge.points %}\
<polyline class="bpmn-flow" data-element-id="{{ edge.id }}" points="{% for x, y in edge.points %}{{ x }},{{ y }} {% endfor %}" \
fill="none" stroke="{{ colors.primary }}" stroke-width="2" marker-end="url(#{{ marker_id }})"/>
{% endfor %}\
{% for shape in shapes %}\
<g class="bpmn-shape bpmn-{{ shape.kind }}" data-element-id="{{ shape.id }}">\
{% if shape.kind == "event" %}\
<circle cx="{{ shape.cx }}" cy="{{ shape.cy }}" r="{{ shape.width / 2 }}" fill="{{ colors.background }}" \
stroke="{{ colors.secondary if shape.element == 'endEvent' else colors.primary }}" \
stroke-width="{{ 4 if shape.element == 'endEvent' else 2 }}"/>\
{% elif shape.kind == "gateway" %}\
<polygon points="{{ shape.cx }},{{ shape.y }} {{ shape.x + shape.width }},{{ shape.cy }} {{ shape.cx }},{{ shape.y + shape.height }} {{ shape.x }},{{ shape.cy }}" \
fill="{{ colors.background }}" stroke="{{ colors.secondary }}" stroke-width="2"/>\
{% else %}\
<rect x="{{ shape.x }}" y="{{ shape.y }}" width="{{ shape.width }}" height="{{ shape.height }}" rx="10" \
fill="{{ colors.background }}" stroke="{{ colors.primary }}" stroke-width="2"/>\
{% endif %}\
{% if shape.label %}<text x="{{ shape.cx }}" y="{{ shape.cy if shape.kind == 'activity' else shape.y + shape.height + 14 }}" \
text-anchor="middle" dominant-baseline="middle" fill="{{ colors.text }}" font-size="12">{{ shape.label }}</text>{% endif %}\
</g>
{% endfor %}\
</svg>"""

CONTAINER_TEMPLATE = """\
<figure class="{{ classes }}" data-bpmn-diagram="true" data-bpmn-src="{{ src }}" data-process-id="{{ process_id }}">
<style data-ornl-bpmn-styles="true">{{ styles }}</style>
<div class="bpmn-svg-container" style="width: {{ width }}px; height: {{ height }}px;\
{% if zoom != 1 %} transform: scale({{ zoom }}); transform-origin: top left;{% endif %}">{{ svg }}</div>
<figcaption class="bpmn-caption">
<span class="bpmn-title">BPMN Workflow: {{ filename }}</span>
<span class="bpmn-process">Process ID: {{ process_id }}</span>
<span class="bpmn-dimensions">Dimensions: {{ width }}×{{ height }}px</span>
</figcaption>
</figure>"""

ERROR_TEMPLATE = """\
<div class="bpmn-error ornl-theme" role="alert" style="border: 2px solid {{ colors.secondary }}; border-radius: 0.5rem; \
padding: 1rem; background-color: rgba(254, 80, 0, 0.1); color: {{ colors.text }};">
<p class="error-message" style="margin: 0; font-weight: bold;">BPMN processing failed</p>
<p class="error-details" style="margin: 0.5rem 0 0 0; font-size: 0.875rem;">{{ message }}</p>
</div>"""

_COLORS = {
    "primary": PRIMARY_COLOR,
    "secondary": SECONDARY_COLOR,
    "text": TEXT_COLOR,
    "background": BACKGROUND_COLOR,
}

_THEME_STYLES = (
    f".bpmn-diagram .bpmn-caption {{ display: flex; gap: 1rem; font-size: 0.875rem; color: {TEXT_COLOR}; }}"
    f" .bpmn-diagram .bpmn-title {{ font-weight: 600; color: {PRIMARY_COLOR}; }}"
    " .bpmn-diagram .bpmn-svg-container { overflow: auto; }"
)


def _get_env() -> Environment:
    """Create Jinja2 environment with autoescape enabled."""
    return Environment(
        loader=BaseLoader(),
        autoescape=select_autoescape(default=True, default_for_string=True),
    )


def _fmt(value: float) -> str:
    return f"{value:g}"


def render_svg(root: ET.Element, process_id: str) -> str:
    """Render a validated BPMN model to SVG.

    Uses diagram-interchange bounds when every shape has them and an automatic
    left-to-right layout otherwise.
    """
    shapes, edges = _collect(root)
    if not _apply_interchange(root, shapes, edges):
        _auto_layout(shapes, edges)

    xs = [shape.x for shape in shapes.values()] + [x for edge in edges for x, _ in edge.points]
    ys = [shape.y for shape in shapes.values()] + [y for edge in edges for _, y in edge.points]
    x2 = [shape.x + shape.width for shape in shapes.values()] + xs
    y2 = [shape.y + shape.height + 20 for shape in shapes.values()] + ys
    if xs:
        min_x, min_y = min(xs) - _PADDING, min(ys) - _PADDING
        view_box = " ".join(
            _fmt(v) for v in (min_x, min_y, max(x2) + _PADDING - min_x, max(y2) + _PADDING - min_y)
        )
    else:
        view_box = f"0 0 {DEFAULT_DIAGRAM_WIDTH} {DEFAULT_DIAGRAM_HEIGHT}"

    template = _get_env().from_string(SVG_TEMPLATE)
    return template.render(
        view_box=view_box,
        process_id=process_id,
        marker_id=f"bpmn-arrow-{process_id or 'diagram'}",
        colors=_COLORS,
        shapes=list(shapes.values()),
        edges=edges,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Directive processing
# ─────────────────────────────────────────────────────────────────────────────


def resolve_diagram_path(src: str, base_dir: Path | None = None) -> Path:
    """Absolute path of a diagram source; relative paths hang off base_dir."""
    path = Path(src)
    if path.is_absolute():
        return path
    return ((base_dir or resolve_base_path()) / path).resolve()


def load_diagram(
    path: Path,
    cache: DiagramCache | None = None,
    max_file_size: int = MAX_DIAGRAM_FILE_SIZE,
) -> RenderedDiagram:
    """Read, validate and render a BPMN file, consulting the cache first.

    Raises:
        DiagramError: On I/O failure, an oversized file or invalid content.
    """
    cache = default_diagram_cache if cache is None else cache
    key = str(path)

    cached = cache.get(key)
    if cached is not None:
        return cached

    try:
        size = path.stat().st_size
        if size > max_file_size:
            raise DiagramError(f"File too large: {size} bytes (max: {max_file_size})")
        data = path.read_bytes()
    except OSError as e:
        raise DiagramError(f"Cannot read {path}: {e.strerror or e}") from e

    root = validate_bpmn(data)
    process_id = _process_id(root)
    rendered = RenderedDiagram(svg=render_svg(root, process_id), process_id=process_id, file_size=size)
    cache.put(key, rendered)
    return rendered


def _dimension(attributes: dict[str, str], name: str, default: float, cast: type) -> float:
    value = attributes.get(name)
    if not value:
        return default
    try:
        return cast(value)
    except ValueError as e:
        raise DiagramError(f'Invalid "{name}" attribute: {value!r}') from e


def render_error(message: str) -> str:
    """The inline error block shown in place of a failed diagram."""
    # Element text only: quotes stay literal
    details = Markup(html.escape(message, quote=False))
    return _get_env().from_string(ERROR_TEMPLATE).render(message=details, colors=_COLORS)


def render_diagram_directive(attributes: dict[str, str], options: CompileOptions) -> str:
    """HTML for one diagram directive.

    Raises:
        DiagramError: Only when options.error_fallback is False.
    """
    src = attributes.get("src")
    try:
        if not src:
            raise DiagramError(MISSING_SRC_MESSAGE)

        width = int(_dimension(attributes, "width", DEFAULT_DIAGRAM_WIDTH, int))
        height = int(_dimension(attributes, "height", DEFAULT_DIAGRAM_HEIGHT, int))
        zoom = _dimension(attributes, "zoom", DEFAULT_DIAGRAM_ZOOM, float)

        path = resolve_diagram_path(src, options.base_dir)
        try:
            diagram = load_diagram(path, options.diagram_cache, options.max_diagram_file_size)
        except DiagramError as e:
            raise DiagramError(f'Failed to process BPMN file "{src}": {e}') from e
    except DiagramError as e:
        if not options.error_fallback:
            raise
        log.warning("Diagram directive failed: %s", e)
        return render_error(str(e))

    classes = list(CONTAINER_CLASSES) + attributes.get("class", "").split()
    return (
        _get_env()
        .from_string(CONTAINER_TEMPLATE)
        .render(
            classes=" ".join(classes),
            src=src,
            process_id=diagram.process_id,
            styles=Markup(_THEME_STYLES),
            width=width,
            height=height,
            zoom=zoom,
            svg=Markup(diagram.svg),
            filename=Path(src).name,
        )
    )


def render_diagrams(tokens: list[Token], context: CompileContext) -> list[Token]:
    """Replace diagram directives (leaf or container) with rendered HTML."""
    name = context.options.diagram_directive
    result: list[Token] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if directive_kind(token) in (LEAF, CONTAINER) and token.meta.get("name") == name:
            end = find_close(tokens, index)
            rendered = render_diagram_directive(token.meta.get("attributes", {}), context.options)
            result.append(
                Token("html_block", "", 0, content=rendered + "\n", block=True, map=token.map, level=token.level)
            )
            index = end + 1
            continue
        result.append(token)
        index += 1
    return result
