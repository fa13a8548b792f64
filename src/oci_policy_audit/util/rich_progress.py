from __future__ import annotations

from typing import Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table

from ..model import CompartmentNode, PolicyStats, TenancySummary


class AuditConsole:
    """
    Colored operator output for an audit run. When disabled, the per-compartment
    progress lines are suppressed.
    """

    def __init__(self, *, enabled: bool, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    def environment(self, label: str, *, region: Optional[str], user: Optional[str], cloud_shell: bool) -> None:
        if cloud_shell:
            self._console.print(f"[green]✔ Environment detected: {escape(label)}[/green]")
            self._console.print(f"[green]  Region: {escape(region or 'not set')}[/green]")
            if user:
                self._console.print(f"[green]  User: {escape(user)}[/green]")
        else:
            self._console.print(f"[yellow]⚠ Cloud Shell not detected. Using {escape(label)}[/yellow]")

    def info(self, label: str, value: str) -> None:
        self._console.print(f"[green]{escape(label)}:[/green] {escape(value)}")

    def ok(self, message: str) -> None:
        self._console.print(f"[green]✔ {escape(message)}[/green]")

    def working(self, message: str) -> None:
        self._console.print(f"[yellow]{escape(message)}[/yellow]")

    def phase(self, title: str) -> None:
        self._console.print(Rule(f"[cyan]{escape(title)}[/cyan]", style="cyan"))

    def discovered(self, node: CompartmentNode, child_count: int) -> None:
        if not self._enabled:
            return
        self._console.print(f"[cyan]Discovering: {escape(node.name)} (level {node.depth})[/cyan]")
        self._console.print(f"[blue]    └── {child_count} subcompartments found[/blue]")

    def aggregated(self, node: CompartmentNode, stats: PolicyStats) -> None:
        if not self._enabled:
            return
        self._console.print(f"[yellow]  Analyzing: {escape(node.name)}[/yellow]")
        if stats.has_policies:
            self._console.print(f"[green]    └── {stats.policy_count} policies found[/green]")
        else:
            self._console.print("[blue]    └── No policies[/blue]")

    def connectivity_failure(self, detail: str, *, cloud_shell: bool, profile: Optional[str]) -> None:
        self._console.print("[red]Error: could not connect to OCI.[/red]")
        self._console.print("")
        self._console.print("[red]Error detail:[/red]")
        self._console.print(escape(detail), highlight=False, soft_wrap=True)
        self._console.print("")
        if cloud_shell:
            hints = "\n".join(
                [
                    "1. Close this terminal and open a new one",
                    "2. If the problem persists, sign out of the OCI Console and sign in again",
                    "3. Check that your user is allowed to list region subscriptions",
                ]
            )
            self._console.print(Panel(hints, title="Possible fixes for Cloud Shell", border_style="yellow"))
        else:
            self._console.print(
                f"[yellow]Check that profile '{escape(profile or 'DEFAULT')}' is configured correctly "
                "in ~/.oci/config[/yellow]"
            )

    def print_text(self, text: str) -> None:
        self._console.print(text, markup=False, highlight=False, soft_wrap=True, end="")


def render_run_summary_table(
    *,
    summary: TenancySummary,
    files: Sequence[str],
    console: Optional[Console] = None,
) -> None:
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    for path in files:
        table.add_row("Report file", path)
    table.add_row("Compartments", str(summary.total_compartments))
    table.add_row("Policies", str(summary.total_policies))
    table.add_row("Statements", str(summary.total_statements))
    table.add_row(
        "Coverage",
        f"{summary.compartments_with_policies}/{summary.total_compartments} compartments with policies",
    )
    (console or Console()).print(table)
