"""Report renderers: Markdown, JSON, Mermaid and Graphviz DOT."""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, List

from .models import AnalysisNode, AnalysisResult, EdgeKind

MERMAID_LABEL_WIDTH = 15
TOP_DEPENDED = 10

DEPTH_COLORS = ["#ff9999", "#99ccff", "#99ff99", "#ffcc99", "#cc99ff", "#ffff99"]

EDGE_LABELS = {
    EdgeKind.FIELD: "field",
    EdgeKind.EMBED: "embeds",
    EdgeKind.INIT: "creates",
    EdgeKind.METHOD_CALL: "calls",
    EdgeKind.INTERFACE: "implements",
    EdgeKind.CONSTRUCTOR: "constructs",
}

KIND_TITLES = {
    EdgeKind.FIELD: "Field dependency",
    EdgeKind.EMBED: "Embedded struct",
    EdgeKind.INIT: "Created in method",
    EdgeKind.METHOD_CALL: "Method call",
    EdgeKind.INTERFACE: "Implements interface",
    EdgeKind.CONSTRUCTOR: "Constructor call",
}


def sanitize_id(name: str) -> str:
    for old, new in ((".", "_"), ("*", "ptr_"), ("[", "_"), ("]", "_"), (" ", "_"), ("-", "_")):
        name = name.replace(old, new)
    return name


def truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[:width] + "..."


def _esc_md(text: str) -> str:
    return text.replace("|", "\\|").replace("*", "\\*")


def _esc_dot(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _depth_counts(result: AnalysisResult) -> List[tuple]:
    return sorted(Counter(node.depth for node in result.nodes).items())


# ===================================================================
# Mermaid
# ===================================================================

def render_mermaid(result: AnalysisResult) -> str:
    lines = ["graph TD"]
    for node in result.nodes:
        label = f"{node.name}<br/>{truncate(node.description, MERMAID_LABEL_WIDTH)}".replace('"', "'")
        lines.append(f'    {sanitize_id(node.name)}["{label}"]')
    lines.append("")

    seen = set()
    for node in result.nodes:
        for edge in node.edges:
            source, target = sanitize_id(edge.source), sanitize_id(edge.target)
            if source == target or (source, target) in seen:
                continue
            seen.add((source, target))
            lines.append(f"    {source} -->|{EDGE_LABELS.get(edge.kind, 'depends')}| {target}")
    lines.append("")

    for node in result.nodes:
        color = DEPTH_COLORS[min(node.depth, len(DEPTH_COLORS) - 1)]
        lines.append(f"    style {sanitize_id(node.name)} fill:{color}")
    return "\n".join(lines) + "\n"


# ===================================================================
# Graphviz DOT
# ===================================================================

def render_dot(result: AnalysisResult) -> str:
    lines = ["digraph StructGraph {", "  rankdir=LR;", "  node [shape=box, style=filled];"]
    for node in result.nodes:
        color = DEPTH_COLORS[min(node.depth, len(DEPTH_COLORS) - 1)]
        label = f"{node.package}.{node.name}" if node.package else node.name
        lines.append(f'  "{_esc_dot(node.name)}" [label="{_esc_dot(label)}", fillcolor="{color}"];')
    for edge in result.all_edges():
        lines.append(
            f'  "{_esc_dot(edge.source)}" -> "{_esc_dot(edge.target)}" '
            f'[label="{_esc_dot(edge.kind.value)}"];'
        )
    lines.append("}")
    return "\n".join(lines) + "\n"


# ===================================================================
# JSON
# ===================================================================

def render_json(result: AnalysisResult) -> str:
    return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)


# ===================================================================
# Markdown
# ===================================================================

def render_markdown(result: AnalysisResult) -> str:
    parts = [
        _md_header(result),
        _md_overview(result),
        _md_nodes_by_depth(result),
        "## Dependency Graph\n\n```mermaid\n" + render_mermaid(result) + "```\n\n---\n\n",
        _md_statistics(result),
        f"Generated at: {result.generated_at}\n",
    ]
    return "".join(parts)


def _md_header(result: AnalysisResult) -> str:
    return (
        "# Go Struct Dependency Report\n\n"
        f"**Project**: {result.project_path}\n"
        f"**Start struct**: {result.seed}\n"
        f"**Max depth**: {result.max_depth}\n"
        f"**Generated**: {result.generated_at}\n\n"
        "---\n\n"
    )


def _md_overview(result: AnalysisResult) -> str:
    lines = ["## Overview", "", f"- **Structs analyzed**: {result.total_nodes}", "- **By depth**:"]
    lines += [f"  - depth {depth}: {count}" for depth, count in _depth_counts(result)]
    lines.append(f"- **Dependencies**: {result.total_edges}")
    lines.append(f"- **Cycles**: {len(result.cycles)}")
    if result.blacklist:
        lines.append(f"- **Ignored**: {', '.join(result.blacklist)}")
    return "\n".join(lines) + "\n\n---\n\n"


def _md_nodes_by_depth(result: AnalysisResult) -> str:
    out = []
    for depth, _ in _depth_counts(result):
        out.append(f"## Depth {depth}\n\n")
        out.extend(_md_node(node) for node in result.nodes_at_depth(depth))
    return "".join(out)


def _md_node(node: AnalysisNode) -> str:
    lines = [f"### {node.name}", "", f"**Description**: {node.description}", "",
             f"**Package**: `{node.package}`", ""]

    if node.fields:
        lines += ["#### Fields", "", "| Name | Type | Exported | Description |",
                  "|------|------|----------|-------------|"]
        for fld in node.fields:
            name = f"*{fld.name}* (embedded)" if fld.embedded else fld.name
            lines.append(f"| {name} | {_esc_md(fld.type)} | {_tick(fld.exported)} | {fld.description} |")
        lines.append("")

    if node.methods:
        lines += ["#### Methods", "", "| Name | Signature | Exported | Description |",
                  "|------|-----------|----------|-------------|"]
        for method in node.methods:
            lines.append(
                f"| {method.name} | {_esc_md(method.signature)} | {_tick(method.exported)} | {method.description} |"
            )
        lines.append("")

    if node.edges:
        lines += ["#### Dependencies", "", "| Target | Kind | Context | Depth |",
                  "|--------|------|---------|-------|"]
        for edge in node.edges:
            lines.append(f"| {edge.target} | {KIND_TITLES[edge.kind]} | {edge.context} | {edge.depth} |")
        lines.append("")

    return "\n".join(lines) + "\n---\n\n"


def _tick(flag: bool) -> str:
    return "✓" if flag else "✗"


def _md_statistics(result: AnalysisResult) -> str:
    lines = ["## Statistics", "", "### Depth distribution"]
    lines += [f"- depth {depth}: {count} structs" for depth, count in _depth_counts(result)]
    lines += ["", "### Most depended on"]

    counts = Counter(edge.target for edge in result.all_edges())
    for rank, (name, count) in enumerate(counts.most_common(TOP_DEPENDED), start=1):
        lines.append(f"{rank}. {name} - {count} dependents")
    lines.append("")

    if result.blacklist:
        lines.append("### Ignored types")
        lines += [f"- {entry}" for entry in result.blacklist]
        lines.append("")

    if result.cycles:
        lines.append("### Cycles")
        lines += [f"{i}. {' -> '.join(cycle)}" for i, cycle in enumerate(result.cycles, start=1)]
        lines.append("")

    return "\n".join(lines) + "\n---\n\n"


# ===================================================================
# Files
# ===================================================================

RENDERERS: Dict[str, Callable[[AnalysisResult], str]] = {
    "markdown": render_markdown,
    "json": render_json,
    "mermaid": render_mermaid,
    "dot": render_dot,
}


def save_report(result: AnalysisResult, output_file: Path, fmt: str = "markdown") -> Path:
    renderer = RENDERERS.get(fmt.lower())
    if renderer is None:
        raise ValueError(f"unsupported format '{fmt}', choose one of: {', '.join(RENDERERS)}")
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(renderer(result), encoding="utf-8")
    return output_file
