"""
Structured FFmpeg filter descriptors.

Filters are built from named parameters with typed values and only turned
into FFmpeg's textual filtergraph syntax when a stage command is assembled.
Serialization applies both escaping levels FFmpeg defines:

1. option values: ``\\``, ``'`` and ``:`` are backslash-escaped
2. filtergraph: ``\\``, ``'``, ``[``, ``]``, ``,`` and ``;`` are backslash-escaped

so user text (drawtext), file paths (subtitles) and style strings can never
break the surrounding graph.
"""

from dataclasses import dataclass, field
from typing import Union

FilterValue = Union[str, int, float, bool]

_OPTION_SPECIALS = ("\\", "'", ":")
_GRAPH_SPECIALS = ("\\", "'", "[", "]", ",", ";")


def format_number(value: float) -> str:
    """Render a number without float noise (``0.5``, ``2``, ``0.333333``)."""
    if isinstance(value, int):
        return str(value)
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _escape(text: str, specials: tuple[str, ...]) -> str:
    # Backslash first so escapes added for other characters stay intact
    for char in specials:
        text = text.replace(char, "\\" + char)
    return text


def escape_option_value(text: str) -> str:
    """First escaping level: a single filter option value."""
    return _escape(text, _OPTION_SPECIALS)


def escape_graph_text(text: str) -> str:
    """Second escaping level: text embedded in a filtergraph description."""
    return _escape(text, _GRAPH_SPECIALS)


def render_value(value: FilterValue) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return format_number(value)
    return escape_graph_text(escape_option_value(str(value)))


def filter_path(path: str) -> str:
    """Normalize a host path for use as a filter argument (forward slashes only).

    Drive-letter colons are escaped by ``render_value`` like any other value.
    """
    return str(path).replace("\\", "/")


def concat_manifest_line(path: str) -> str:
    """One concat-demuxer entry: ``file '<path>'`` with quotes escaped."""
    normalized = str(path).replace("\\", "/").replace("'", "'\\''")
    return f"file '{normalized}'"


@dataclass(frozen=True)
class Filter:
    """A single filter with positional and named arguments."""

    name: str
    positional: tuple[FilterValue, ...] = ()
    options: tuple[tuple[str, FilterValue], ...] = ()

    @classmethod
    def of(cls, name: str, *positional: FilterValue, **options: FilterValue) -> "Filter":
        return cls(name=name, positional=positional, options=tuple(options.items()))

    def option(self, key: str) -> FilterValue | None:
        for name, value in self.options:
            if name == key:
                return value
        return None

    def render(self) -> str:
        args = [render_value(v) for v in self.positional]
        args.extend(f"{key}={render_value(value)}" for key, value in self.options)
        if not args:
            return self.name
        return f"{self.name}=" + ":".join(args)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class FilterChain:
    """Filters applied one after another to a single stream."""

    filters: tuple[Filter, ...] = ()

    @classmethod
    def of(cls, *filters: Filter) -> "FilterChain":
        return cls(filters=tuple(filters))

    def __bool__(self) -> bool:
        return bool(self.filters)

    def __len__(self) -> int:
        return len(self.filters)

    def __iter__(self):
        return iter(self.filters)

    def names(self) -> list[str]:
        return [f.name for f in self.filters]

    def render(self) -> str:
        return ",".join(f.render() for f in self.filters)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class GraphNode:
    """A labelled chain inside a filter_complex graph: ``[in]...chain...[out]``."""

    inputs: tuple[str, ...]
    chain: FilterChain
    outputs: tuple[str, ...]

    def render(self) -> str:
        ins = "".join(f"[{label}]" for label in self.inputs)
        outs = "".join(f"[{label}]" for label in self.outputs)
        return f"{ins}{self.chain.render()}{outs}"


@dataclass
class FilterGraph:
    """A filter_complex description built node by node."""

    nodes: list[GraphNode] = field(default_factory=list)

    def add(
        self,
        inputs: list[str] | tuple[str, ...],
        chain: FilterChain | Filter,
        outputs: list[str] | tuple[str, ...],
    ) -> "FilterGraph":
        if isinstance(chain, Filter):
            chain = FilterChain.of(chain)
        self.nodes.append(GraphNode(tuple(inputs), chain, tuple(outputs)))
        return self

    def __bool__(self) -> bool:
        return bool(self.nodes)

    def filter_names(self) -> list[str]:
        return [name for node in self.nodes for name in node.chain.names()]

    def render(self) -> str:
        return ";".join(node.render() for node in self.nodes)

    def __str__(self) -> str:
        return self.render()
