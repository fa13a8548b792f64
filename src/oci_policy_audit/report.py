from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from . import __version__
from .model import CompartmentNode, Policy, PolicyStats, TenancySummary
from .util.errors import ReportError
from .util.time import banner_timestamp, file_timestamp

DETAIL_TITLE = "OCI POLICIES - HIERARCHICAL ANALYSIS"
SUMMARY_TITLE = "EXECUTIVE SUMMARY - OCI POLICIES"
GENERATOR = f"OCI Policies Hierarchical Analyzer (oci-policy-audit {__version__})"

RULE_WIDTH = 80
INDENT_UNIT = "    "
BRANCH = "└── "
ROOT_PREFIX = "[ROOT] "
NAME_WIDTH = 35
COUNT_WIDTH = 10
LOW_POLICY_THRESHOLD = 5

PolicyLookup = Callable[[str], Sequence[Policy]]


@dataclass(frozen=True)
class ReportHeader:
    tenancy_name: str
    environment: str
    generated_at: str
    region: Optional[str] = None


@dataclass(frozen=True)
class ReportPaths:
    detail: Path
    summary: Path


def _underlined(title: str) -> List[str]:
    return [title, "=" * len(title)]


def _stats_by_id(stats: Sequence[PolicyStats]) -> Dict[str, PolicyStats]:
    return {s.compartment_id: s for s in stats}


def render_banner(title: str, header: ReportHeader, *, include_region: bool = True) -> List[str]:
    rule = "#" * RULE_WIDTH
    lines = [
        rule,
        f"#  {title}",
        rule,
        "#",
        f"#  Tenancy     : {header.tenancy_name}",
        f"#  Date        : {header.generated_at}",
        f"#  Environment : {header.environment}",
    ]
    if include_region:
        lines.append(f"#  Region      : {header.region or 'N/A'}")
    lines.extend(["#", rule, ""])
    return lines


def format_ratio(numerator: int, denominator: int) -> str:
    """
    Render numerator/denominator with two decimals using integer arithmetic only.
    """
    scaled = numerator * 100 // denominator
    return f"{scaled // 100}.{scaled % 100:02d}"


def coverage_percent(summary: TenancySummary) -> Optional[int]:
    if summary.total_compartments <= 0:
        return None
    return summary.compartments_with_policies * 100 // summary.total_compartments


def security_metrics(summary: TenancySummary) -> List[str]:
    lines: List[str] = []
    coverage = coverage_percent(summary)
    if coverage is not None:
        lines.append(f"  Policy coverage: {coverage}%")
        lines.append(
            "  Average policies/compartment: " + format_ratio(summary.total_policies, summary.total_compartments)
        )
    if summary.total_policies > 0:
        lines.append("  Average statements/policy: " + format_ratio(summary.total_statements, summary.total_policies))
    return lines


def recommendations(summary: TenancySummary) -> List[str]:
    lines: List[str] = []
    if summary.compartments_without_policies > summary.compartments_with_policies:
        lines.append("  [!] More compartments without policies than with policies.")
        lines.append("      Review whether this is intentional or configuration is missing.")
    else:
        lines.append("  [OK] Policy distribution appears balanced.")
    if summary.total_policies < LOW_POLICY_THRESHOLD:
        lines.append(f"  [!] Very few policies detected ({summary.total_policies}).")
        lines.append("      Verify the permissions configuration.")
    return lines


def _render_node(node: CompartmentNode, s: PolicyStats, policies_for: PolicyLookup) -> List[str]:
    indent = INDENT_UNIT * node.depth
    prefix = ROOT_PREFIX if node.depth == 0 else f"{indent}{BRANCH}"
    lines = [
        f"{prefix}{node.name}",
        f"{INDENT_UNIT}{indent}Path: {node.path}",
        f"{INDENT_UNIT}{indent}Policies: {s.policy_count} | Statements: {s.statement_count}",
    ]
    if s.policy_count > 0:
        body = INDENT_UNIT * 2 + indent
        for policy in policies_for(node.id):
            lines.append("")
            lines.append(f"{body}Policy: {policy.name}")
            lines.append(f"{body}  ID: {policy.id}")
            lines.append(f"{body}  Statements:")
            for statement in policy.statements:
                lines.append(f"{body}    - {statement}")
    lines.append("")
    return lines


def render_detail(
    nodes: Sequence[CompartmentNode],
    stats: Sequence[PolicyStats],
    policies_for: PolicyLookup,
) -> str:
    """
    Indented hierarchy of every compartment with its policies and statements.

    Nodes are stable-sorted by depth, so ties keep discovery order. Statements are
    written exactly as returned by the directory.
    """
    by_id = _stats_by_id(stats)
    lines: List[str] = []
    for node in sorted(nodes, key=lambda n: n.depth):
        s = by_id.get(node.id) or PolicyStats(compartment_id=node.id)
        lines.extend(_render_node(node, s, policies_for))
    return "\n".join(lines) + ("\n" if lines else "")


def render_detail_document(
    header: ReportHeader,
    nodes: Sequence[CompartmentNode],
    stats: Sequence[PolicyStats],
    policies_for: PolicyLookup,
) -> str:
    lines = render_banner(DETAIL_TITLE, header)
    lines.extend(_underlined("COMPARTMENT AND POLICY HIERARCHY:"))
    lines.append("")
    return "\n".join(lines) + "\n" + render_detail(nodes, stats, policies_for)


def _table_row(name: str, count: str, path: str) -> str:
    return f"{name:<{NAME_WIDTH}} | {count:<{COUNT_WIDTH}} | {path}"


def render_summary(
    nodes: Sequence[CompartmentNode],
    stats: Sequence[PolicyStats],
    summary: TenancySummary,
    *,
    header: ReportHeader,
    detail_filename: str,
) -> str:
    lines = render_banner(SUMMARY_TITLE, header, include_region=False)

    lines.extend(_underlined("GENERAL STATISTICS"))
    lines.append(f"  Compartments analyzed         : {summary.total_compartments}")
    lines.append(f"  Compartments with policies    : {summary.compartments_with_policies}")
    lines.append(f"  Compartments without policies : {summary.compartments_without_policies}")
    lines.append(f"  Total policies                : {summary.total_policies}")
    lines.append(f"  Total statements              : {summary.total_statements}")
    lines.append("")

    lines.extend(_underlined("DISTRIBUTION BY COMPARTMENT"))
    lines.append(_table_row("COMPARTMENT", "POLICIES", "PATH"))
    lines.append(f"{'-' * NAME_WIDTH}-+-{'-' * COUNT_WIDTH}-+-{'-' * 20}")
    nodes_by_id = {n.id: n for n in nodes}
    for s in stats:
        node = nodes_by_id.get(s.compartment_id)
        if node is None:
            continue
        lines.append(_table_row(node.name, str(s.policy_count), node.path))
    lines.append("")

    lines.extend(_underlined("SECURITY ANALYSIS"))
    lines.extend(security_metrics(summary))
    lines.append("")

    lines.extend(_underlined("RECOMMENDATIONS"))
    lines.extend(recommendations(summary))
    lines.append("")

    lines.append("=" * RULE_WIDTH)
    lines.append(f"Detail file: {detail_filename}")
    lines.append(f"Generated by: {GENERATOR}")
    lines.append("=" * RULE_WIDTH)
    return "\n".join(lines) + "\n"


def make_header(tenancy_name: str, environment: str, region: Optional[str], when: Optional[datetime] = None) -> ReportHeader:
    return ReportHeader(
        tenancy_name=tenancy_name,
        environment=environment,
        generated_at=banner_timestamp(when),
        region=region,
    )


def report_paths(outdir: Path, when: Optional[datetime] = None) -> ReportPaths:
    ts = file_timestamp(when)
    return ReportPaths(
        detail=outdir / f"oci_policies_complete_{ts}.txt",
        summary=outdir / f"oci_policies_summary_{ts}.txt",
    )


def write_reports(
    *,
    outdir: Path,
    header: ReportHeader,
    nodes: Sequence[CompartmentNode],
    stats: Sequence[PolicyStats],
    summary: TenancySummary,
    policies_for: PolicyLookup,
    when: Optional[datetime] = None,
) -> ReportPaths:
    paths = report_paths(outdir, when)
    detail_text = render_detail_document(header, nodes, stats, policies_for)
    summary_text = render_summary(
        nodes,
        stats,
        summary,
        header=header,
        detail_filename=paths.detail.name,
    )
    try:
        outdir.mkdir(parents=True, exist_ok=True)
        paths.detail.write_text(detail_text, encoding="utf-8")
        paths.summary.write_text(summary_text, encoding="utf-8")
    except OSError as e:
        raise ReportError(f"Failed to write reports to {outdir}: {e}") from e
    return paths
