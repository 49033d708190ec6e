"""revguard CLI command implementations.

Each function implements a subcommand (check, tags, ids, lint, build,
mapfile, security, init, version) and returns the process exit code:
0 for success, 1 for findings, 2 for usage or runtime errors.
"""

import json
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from revguard._version import get_full_version_string
from revguard.book.catalog import load_catalog
from revguard.book.checks import (
    FixPlan,
    apply_id_fixes,
    enforce_tags,
    lint_project,
    plan_id_fixes,
)
from revguard.book.pipeline import build_pdf_hybrid, probe_mapfile
from revguard.book.security import SecurityConfigCache, compare_with_review_ext
from revguard.config import CONFIG_FILE, RevguardConfig, load_config, save_config
from revguard.tools.review.applier import ApplyError
from revguard.tools.review.diagnostics import Diagnostic
from revguard.tools.review.planner import FixEdit

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_ERROR = 2

console = Console()

security_cache = SecurityConfigCache()


def _load_project(cwd: Path) -> tuple[RevguardConfig, list[str]] | None:
    """Load config and catalog files, printing the error if either fails."""
    try:
        config = load_config(cwd)
        catalog = load_catalog(cwd, config.project.catalog)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        return None
    return config, catalog.files


def _print_fix_preview(fixes: list[FixEdit], limit: int) -> None:
    for fix in fixes[:limit]:
        console.print(
            f"  {escape(fix.file)}:{fix.line_start} ({fix.reason}) -> {escape(fix.after)}",
            soft_wrap=True,
        )
    if len(fixes) > limit:
        console.print(f"  [dim]...(and {len(fixes) - limit} more)[/]")


def _print_diagnostics(diagnostics: list[Diagnostic]) -> None:
    for d in diagnostics:
        location = f"{d.file or '(unknown)'}:{d.line if d.line is not None else '-'}"
        console.print(f"  {escape(location)} {escape(d.message)}", soft_wrap=True)


def cmd_check(cwd: Path, *, apply_ids: bool = False) -> int:
    """Run the full check: unknown tags, ID fixes, then lint.

    Args:
        cwd: Project root
        apply_ids: Apply planned ID fixes instead of previewing them

    Returns:
        Exit code (1 if blocking tag violations or lint warnings were found)
    """
    console.print(Panel("[bold blue]revguard check[/]", expand=False))

    loaded = _load_project(cwd)
    if loaded is None:
        return EXIT_ERROR
    config, files = loaded
    console.print(f"[dim]Files: {len(files)} (profile: {config.check.profile})[/]")

    # Unknown tags
    tags = enforce_tags(cwd, files, config.effective_allowlist)
    if tags.violations:
        console.print("[yellow]Unknown tags detected:[/]")
        for v in tags.violations:
            kind = escape(f"[{v.kind}]")
            console.print(
                f"  {escape(v.file)}:{v.line} {kind} {escape(v.name)} :: {escape(v.snippet)}",
                soft_wrap=True,
            )
    if tags.failures:
        for failure in tags.failures:
            console.print(f"[red]Error:[/] Cannot read {escape(failure.file)}: {escape(failure.error)}")
        return EXIT_ERROR

    # IDs
    try:
        plan = plan_id_fixes(cwd, files)
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        return EXIT_ERROR

    if plan.count:
        console.print(f"[yellow]ID issues found: {plan.count} fixes planned.[/]")
        if apply_ids:
            try:
                result = apply_id_fixes(cwd, plan.fixes)
            except ApplyError as e:
                console.print(f"[red]Error:[/] {escape(str(e))}")
                return EXIT_ERROR
            console.print(f"[green]✓[/] Applied: {result.applied} fixes.")
        else:
            _print_fix_preview(plan.fixes, config.check.preview_limit)

    # Lint
    diagnostics = lint_project(cwd, files, config.check.target)
    if diagnostics:
        console.print("[yellow]Lint warnings:[/]")
        _print_diagnostics(diagnostics)

    blocking = bool(tags.violations) and config.check.block_on_unknown_tags
    if blocking or diagnostics:
        return EXIT_FINDINGS

    console.print("[green]✓[/] No problems found")
    return EXIT_OK


def cmd_tags(cwd: Path, *, json_output: bool = False) -> int:
    """Report tags that are not in the allowlist.

    Returns:
        Exit code (1 if any tag is not allowed)
    """
    loaded = _load_project(cwd)
    if loaded is None:
        return EXIT_ERROR
    config, files = loaded

    result = enforce_tags(cwd, files, config.effective_allowlist)

    if json_output:
        data = {
            "profile": config.check.profile,
            "allowlist_source": config.allowlist_source,
            **result.to_dict(),
        }
        console.print(json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True)
        return EXIT_OK if result.ok else EXIT_FINDINGS

    console.print(Panel("[bold blue]revguard tags[/]", expand=False))
    console.print(f"[dim]Allowlist: {config.allowlist_source}[/]")

    for failure in result.failures:
        console.print(f"[red]Error:[/] Cannot read {escape(failure.file)}: {escape(failure.error)}")

    if not result.violations:
        console.print("[green]✓[/] All tags are allowed")
        return EXIT_OK if result.ok else EXIT_FINDINGS

    table = Table(title="Unknown Tags")
    table.add_column("Location", style="cyan")
    table.add_column("Kind")
    table.add_column("Name", style="bold yellow")
    table.add_column("Snippet")
    for v in result.violations:
        table.add_row(f"{escape(v.file)}:{v.line}", v.kind, escape(v.name), escape(v.snippet))

    console.print()
    console.print(table)
    return EXIT_FINDINGS


def cmd_ids_plan(cwd: Path, *, output: Path | None = None) -> int:
    """Plan ID fixes and optionally save the plan as JSON.

    Args:
        cwd: Project root
        output: File to write the plan to

    Returns:
        Exit code (0 even when fixes are planned)
    """
    console.print(Panel("[bold blue]revguard ids plan[/]", expand=False))

    loaded = _load_project(cwd)
    if loaded is None:
        return EXIT_ERROR
    config, files = loaded

    try:
        plan = plan_id_fixes(cwd, files)
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        return EXIT_ERROR

    if output:
        output.write_text(json.dumps(plan.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"[green]✓[/] Wrote plan to {escape(str(output))}")

    if not plan.count:
        console.print("[green]✓[/] No ID fixes needed")
        return EXIT_OK

    console.print(f"ID issues found: {plan.count} fixes planned.")
    _print_fix_preview(plan.fixes, config.check.preview_limit)
    return EXIT_OK


def cmd_ids_apply(cwd: Path, *, plan_file: Path | None = None) -> int:
    """Apply ID fixes from a saved plan, or from a fresh plan.

    Returns:
        Exit code (2 if the plan can't be loaded or applied)
    """
    console.print(Panel("[bold blue]revguard ids apply[/]", expand=False))

    if plan_file:
        try:
            plan = FixPlan.from_dict(json.loads(plan_file.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
            console.print(f"[red]Error:[/] Cannot load plan {escape(str(plan_file))}: {escape(str(e))}")
            return EXIT_ERROR
    else:
        loaded = _load_project(cwd)
        if loaded is None:
            return EXIT_ERROR
        _config, files = loaded
        try:
            plan = plan_id_fixes(cwd, files)
        except (OSError, UnicodeDecodeError) as e:
            console.print(f"[red]Error:[/] {escape(str(e))}")
            return EXIT_ERROR

    if not plan.count:
        console.print("[green]✓[/] No ID fixes needed")
        return EXIT_OK

    try:
        result = apply_id_fixes(cwd, plan.fixes)
    except ApplyError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        if e.completed:
            console.print(f"[dim]Already fixed: {escape(', '.join(e.completed))} ({e.applied} fixes)[/]")
        return EXIT_ERROR

    console.print(f"[green]✓[/] Applied: {result.applied} fixes.")
    for file, backup in zip(result.files, result.backups, strict=True):
        console.print(f"  • {escape(file)} [dim](backup: {escape(backup)})[/]")
    return EXIT_OK


def cmd_lint(cwd: Path) -> int:
    """Compile every manuscript and report warnings.

    Returns:
        Exit code (1 if there are warnings)
    """
    console.print(Panel("[bold blue]revguard lint[/]", expand=False))

    loaded = _load_project(cwd)
    if loaded is None:
        return EXIT_ERROR
    config, files = loaded

    diagnostics = lint_project(cwd, files, config.check.target)
    if not diagnostics:
        console.print("[green]✓[/] No lint warnings")
        return EXIT_OK

    console.print("[yellow]Lint warnings:[/]")
    _print_diagnostics(diagnostics)
    return EXIT_FINDINGS


def cmd_build(cwd: Path, *, config_file: str | None = None, skip_preprocess: bool = False) -> int:
    """Build the PDF through the preprocessor and review-pdfmaker.

    Returns:
        Exit code (1 if a build step failed)
    """
    console.print(Panel("[bold blue]revguard build[/]", expand=False))

    if config_file is None:
        try:
            config_file = load_config(cwd).project.review_config
        except ValueError as e:
            console.print(f"[red]Error:[/] {escape(str(e))}")
            return EXIT_ERROR

    result = build_pdf_hybrid(cwd, config=config_file, skip_preprocess=skip_preprocess)

    for step in result.steps:
        mark = "[green]✓[/]" if step.success else "[red]✗[/]"
        console.print(f"{mark} {step.step}")
        if step.error:
            console.print(f"  [dim]{escape(step.error.strip()[:500])}[/]")

    if not result.success:
        console.print(f"[red]Error:[/] {result.error}")
        return EXIT_FINDINGS

    for pdf in result.artifacts:
        console.print(f"  • {escape(str(pdf))}")
    return EXIT_OK


def cmd_mapfile(cwd: Path, file: str) -> int:
    """Check a #@mapfile target against the security config and expand it.

    Returns:
        Exit code (1 if the file is rejected or preprocessing fails)
    """
    console.print(Panel("[bold blue]revguard mapfile[/]", expand=False))

    security = security_cache.get(cwd)
    console.print(f"[dim]Security config: {security.source}[/]")

    result = probe_mapfile(cwd, file, security)
    if not result.success:
        console.print(f"[red]✗[/] {escape(result.error or 'Mapfile check failed')}")
        for issue in result.issues:
            console.print(f"  • {escape(issue)}")
        return EXIT_FINDINGS

    console.print(f"[green]✓[/] Expanded {escape(file)}")
    if result.stats:
        console.print(
            f"[dim]Files processed: {result.stats.files_processed}, "
            f"macros expanded: {result.stats.macros_expanded}[/]"
        )
    console.print(result.processed_content, markup=False, highlight=False)
    return EXIT_OK


def cmd_security(cwd: Path, *, reload: bool = False) -> int:
    """Show the mapfile security config and how it compares with review-ext.rb.

    Returns:
        Exit code (0 for success)
    """
    console.print(Panel("[bold blue]revguard security[/]", expand=False))

    security = security_cache.get(cwd, force_reload=reload)

    table = Table(title="Mapfile Security")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("source", security.source)
    table.add_row("max_file_size", f"{security.max_file_size} bytes")
    table.add_row("allowed_extensions", escape(", ".join(security.allowed_extensions)) or "[dim](any)[/]")
    table.add_row("allowed_paths", escape(", ".join(security.allowed_paths)) or "[dim](any)[/]")
    table.add_row("block_absolute_paths", str(security.block_absolute_paths))
    table.add_row("block_traversal", str(security.block_traversal))

    console.print()
    console.print(table)

    if security.source != "reviewextention":
        comparison = compare_with_review_ext(cwd, security)
        console.print()
        if comparison.matching:
            console.print("[green]✓[/] Matches review-ext.rb")
        else:
            console.print("[yellow]Differences from review-ext.rb:[/]")
            for diff in comparison.differences:
                console.print(f"  • {escape(diff)}")

    return EXIT_OK


def cmd_init(cwd: Path, *, force: bool = False) -> int:
    """Write .revguard/config.toml, migrating a legacy review-mcp.json if present.

    Returns:
        Exit code (1 if a config already exists and force is not set)
    """
    console.print(Panel("[bold blue]revguard init[/]", expand=False))

    existing = (cwd / CONFIG_FILE).exists()
    if existing and not force:
        console.print(f"[yellow]Config already exists:[/] {CONFIG_FILE}")
        console.print("[dim]Use --force to overwrite[/]")
        return EXIT_FINDINGS

    try:
        # An existing config.toml is replaced with defaults
        config = RevguardConfig() if existing else load_config(cwd)
    except ValueError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        return EXIT_ERROR

    if config.source == "json":
        console.print("[dim]Migrating settings from review-mcp.json[/]")

    path = save_config(config, cwd)
    console.print(f"[green]✓[/] Wrote {escape(str(path.relative_to(cwd)))}")
    return EXIT_OK


def cmd_version(cwd: Path) -> int:
    """Print revguard and Re:VIEW versions."""
    console.print(get_full_version_string(cwd))
    return EXIT_OK
