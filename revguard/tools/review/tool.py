"""Re:VIEW Manuscript Tool for checking tags and fixing IDs in a book project."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from openhands.sdk.tool import (
    Action,
    Observation,
    ToolAnnotations,
    ToolDefinition,
    ToolExecutor,
)
from pydantic import AliasChoices, BaseModel, Field
from rich.text import Text

from revguard.book.catalog import load_catalog
from revguard.book.checks import apply_id_fixes, enforce_tags, lint_project, plan_id_fixes
from revguard.book.compiler import review_version
from revguard.config import PROFILES, load_config

from .allowlist import Allowlist
from .applier import ApplyError
from .planner import REASON_EMPTY, FixEdit

if TYPE_CHECKING:
    from openhands.sdk.conversation.state import ConversationState


REVIEW_TOOL_DESCRIPTION = """
Re:VIEW Manuscript Tool for checking and fixing Re:VIEW book projects.

This tool provides commands for:
- Reporting the installed Re:VIEW version
- Listing the allowed block and inline tags
- Finding tags that are not in the allowlist
- Planning fixes for missing or duplicate IDs (read-only)
- Applying a fix plan (writes files, keeps .bak backups)
- Compiling manuscripts and reporting compiler warnings

Files default to those listed in the project's catalog.yml. Always run
fix_ids_plan first and pass its fixes to fix_ids_apply unchanged.
""".strip()

# Command visualization metadata: (icon, style, label)
ACTION_DISPLAY: dict[str, tuple[str, str, str]] = {
    "version": ("ℹ️ ", "blue", "Re:VIEW Version"),
    "tags_list": ("📋 ", "cyan", "List Allowed Tags"),
    "enforce_tags": ("🔍 ", "yellow", "Check Tags"),
    "fix_ids_plan": ("🧮 ", "green", "Plan ID Fixes"),
    "fix_ids_apply": ("✏️ ", "magenta", "Apply ID Fixes"),
    "lint": ("🧹 ", "blue", "Lint Manuscripts"),
}

Command = Literal["version", "tags_list", "enforce_tags", "fix_ids_plan", "fix_ids_apply", "lint"]


class AllowlistModel(BaseModel):
    """Allowed tag names supplied with an action."""

    blocks: list[str] = Field(default_factory=list, description="Allowed block tag names.")
    inline: list[str] = Field(default_factory=list, description="Allowed inline tag names.")

    def to_allowlist(self) -> Allowlist:
        return Allowlist.of(self.blocks, self.inline)


class FixEditModel(BaseModel):
    """A planned single-line edit, as returned by fix_ids_plan."""

    file: str = Field(description="File path relative to the project root.")
    line_start: int = Field(
        ge=1,
        validation_alias=AliasChoices("line_start", "lineStart"),
        description="1-based line number.",
    )
    line_end: int | None = Field(
        default=None,
        validation_alias=AliasChoices("line_end", "lineEnd"),
        description="Same as line_start.",
    )
    before: str = Field(description="Line content when the fix was planned.")
    after: str = Field(description="Replacement line content.")
    reason: Literal["empty", "duplicate"] = Field(default=REASON_EMPTY)

    def to_fix_edit(self) -> FixEdit:
        return FixEdit(
            file=self.file,
            line_start=self.line_start,
            line_end=self.line_end or self.line_start,
            before=self.before,
            after=self.after,
            reason=self.reason,
        )


class ReviewAction(Action):
    """Action for the Re:VIEW manuscript tool."""

    command: Command = Field(
        description=(
            "Command to execute: 'version' shows the Re:VIEW version, 'tags_list' shows "
            "allowed tags, 'enforce_tags' finds tags outside the allowlist, 'fix_ids_plan' "
            "plans ID fixes without writing, 'fix_ids_apply' applies planned fixes, "
            "'lint' compiles manuscripts and reports warnings"
        )
    )
    files: list[str] | None = Field(
        default=None,
        description="Manuscript files relative to the project root (default: catalog.yml files).",
    )
    profile: str | None = Field(
        default=None, description=f"Compatibility profile: {', '.join(PROFILES)}."
    )
    allow: AllowlistModel | None = Field(
        default=None, description="Allowlist override. Used with enforce_tags."
    )
    fixes: list[FixEditModel] | None = Field(
        default=None, description="Fixes from fix_ids_plan. Required for fix_ids_apply."
    )

    @property
    def visualize(self) -> Text:
        """Return Rich Text representation of this action."""
        content = Text()
        icon, style, label = ACTION_DISPLAY[self.command]
        content.append(icon, style=style)
        content.append(label, style=style)
        if self.files:
            content.append(f" - {', '.join(self.files)}", style="white")
        if self.fixes is not None:
            content.append(f" ({len(self.fixes)} fixes)", style="dim")
        return content


class ReviewObservation(Observation):
    """Observation from the Re:VIEW manuscript tool."""

    command: Command = Field(description="The command that was executed.")
    result: str = Field(description="Result of the operation: 'success', 'error', or 'warning'.")

    # version
    review_version: str | None = Field(default=None, description="Re:VIEW CLI version.")

    # tags_list / enforce_tags
    profile: str | None = Field(default=None, description="Compatibility profile in effect.")
    allowlist: dict[str, list[str]] | None = Field(
        default=None, description="Allowed block and inline tag names."
    )
    allowlist_source: str | None = Field(
        default=None, description="Where the allowlist came from: builtin, toml, json, action."
    )
    violations: list[dict[str, Any]] | None = Field(
        default=None, description="Tags that are not in the allowlist."
    )
    read_failures: list[dict[str, str]] | None = Field(
        default=None, description="Files that could not be read."
    )

    # fix_ids_plan / fix_ids_apply
    fix_count: int | None = Field(default=None, description="Number of planned fixes.")
    fixes: list[dict[str, Any]] | None = Field(default=None, description="Planned fixes.")
    applied: int | None = Field(default=None, description="Number of fixes applied.")
    files_changed: list[str] | None = Field(default=None, description="Files rewritten.")
    backups: list[str] | None = Field(default=None, description="Backup files written.")

    # lint
    diagnostics: list[dict[str, Any]] | None = Field(
        default=None, description="Warnings reported by review-compile."
    )

    @property
    def visualize(self) -> Text:
        """Return Rich Text representation of this observation."""
        text = Text()

        if self.is_error:
            text.append("❌ ", style="red bold")
            text.append(self.ERROR_MESSAGE_HEADER, style="bold red")
            return text

        if self.result == "success":
            text.append("✅ ", style="green bold")
        else:
            text.append("⚠️  ", style="yellow bold")

        if self.command == "version":
            text.append(f"Re:VIEW {self.review_version}", style="blue")

        elif self.command == "tags_list":
            allow = self.allowlist or {}
            text.append(
                f"{len(allow.get('blocks', []))} blocks, {len(allow.get('inline', []))} inline tags",
                style="cyan",
            )
            text.append(f" ({self.allowlist_source})", style="dim")

        elif self.command == "enforce_tags":
            if self.violations:
                text.append(f"{len(self.violations)} unknown tags", style="yellow")
            else:
                text.append("All tags allowed", style="green")
            if self.read_failures:
                text.append(f" ({len(self.read_failures)} unreadable files)", style="dim")

        elif self.command == "fix_ids_plan":
            text.append(f"Planned {self.fix_count} ID fixes", style="green")

        elif self.command == "fix_ids_apply":
            text.append(f"Applied {self.applied} ID fixes", style="magenta")
            if self.files_changed:
                text.append(f" in {len(self.files_changed)} files", style="dim")

        elif self.command == "lint":
            if self.diagnostics:
                text.append(f"{len(self.diagnostics)} warnings", style="yellow")
            else:
                text.append("No warnings", style="green")

        return text


class ReviewExecutor(ToolExecutor[ReviewAction, ReviewObservation]):
    """Executor for Re:VIEW manuscript operations."""

    def __init__(self, workspace_dir: Path):
        """Initialize the executor.

        Args:
            workspace_dir: Path to the Re:VIEW project root.
        """
        self.workspace_dir = workspace_dir

    def __call__(self, action: ReviewAction, conversation=None) -> ReviewObservation:  # noqa: ARG002
        """Execute a Re:VIEW action.

        Args:
            action: The action to execute.
            conversation: The conversation context (unused).

        Returns:
            Observation with the results.
        """
        return self.execute(action)

    def _error(self, action: ReviewAction, message: str) -> ReviewObservation:
        return ReviewObservation.from_text(
            text=message,
            is_error=True,
            command=action.command,
            result="error",
        )

    def _resolve_files(self, action: ReviewAction, catalog: str) -> list[str]:
        if action.files is not None:
            return list(action.files)
        return load_catalog(self.workspace_dir, catalog).files

    def execute(self, action: ReviewAction) -> ReviewObservation:
        """Execute a Re:VIEW action.

        Args:
            action: The action to execute.

        Returns:
            Observation with the results.
        """
        try:
            workspace = self.workspace_dir.resolve()

            # Prevent path traversal attacks
            for file in action.files or []:
                if not (workspace / file).resolve().is_relative_to(workspace):
                    return self._error(action, f"Invalid path (outside workspace): {file}")

            if action.profile is not None and action.profile not in PROFILES:
                return self._error(
                    action, f"Unknown profile: {action.profile}. Available: {', '.join(PROFILES)}"
                )

            handlers = {
                "version": self._version,
                "tags_list": self._tags_list,
                "enforce_tags": self._enforce_tags,
                "fix_ids_plan": self._fix_ids_plan,
                "fix_ids_apply": self._fix_ids_apply,
                "lint": self._lint,
            }
            return handlers[action.command](action)

        except FileNotFoundError as e:
            return self._error(action, str(e))
        except ApplyError as e:
            completed = ", ".join(e.completed) or "none"
            return self._error(
                action, f"{e} (files completed before the failure: {completed}; applied: {e.applied})"
            )
        except Exception as e:
            return self._error(action, f"Unexpected error: {str(e)}")

    def _version(self, action: ReviewAction) -> ReviewObservation:
        """Report the Re:VIEW CLI version."""
        try:
            version = review_version(self.workspace_dir)
        except RuntimeError as e:
            return self._error(action, f"Could not run 'review --version': {e}")

        return ReviewObservation(command=action.command, result="success", review_version=version)

    def _tags_list(self, action: ReviewAction) -> ReviewObservation:
        """List the allowlist in effect."""
        config = load_config(self.workspace_dir)
        return ReviewObservation(
            command=action.command,
            result="success",
            profile=action.profile or config.check.profile,
            allowlist=config.effective_allowlist.to_dict(),
            allowlist_source=config.allowlist_source,
        )

    def _enforce_tags(self, action: ReviewAction) -> ReviewObservation:
        """Find tags outside the allowlist."""
        config = load_config(self.workspace_dir)
        if action.allow is not None:
            allowlist, source = action.allow.to_allowlist(), "action"
        else:
            allowlist, source = config.effective_allowlist, config.allowlist_source

        files = self._resolve_files(action, config.project.catalog)
        check = enforce_tags(self.workspace_dir, files, allowlist)

        return ReviewObservation(
            command=action.command,
            result="success" if check.ok else "warning",
            profile=action.profile or config.check.profile,
            allowlist=allowlist.to_dict(),
            allowlist_source=source,
            violations=[v.to_dict() for v in check.violations],
            read_failures=[f.to_dict() for f in check.failures],
        )

    def _fix_ids_plan(self, action: ReviewAction) -> ReviewObservation:
        """Plan ID fixes without touching any file."""
        config = load_config(self.workspace_dir)
        files = self._resolve_files(action, config.project.catalog)
        try:
            plan = plan_id_fixes(self.workspace_dir, files)
        except (OSError, UnicodeDecodeError) as e:
            return self._error(action, f"Cannot plan ID fixes: {e}")

        return ReviewObservation(
            command=action.command,
            result="success",
            fix_count=plan.count,
            fixes=[f.to_dict() for f in plan.fixes],
        )

    def _fix_ids_apply(self, action: ReviewAction) -> ReviewObservation:
        """Apply a fix plan produced by fix_ids_plan."""
        if action.fixes is None:
            return self._error(action, "Missing required parameter: 'fixes'")

        result = apply_id_fixes(self.workspace_dir, [f.to_fix_edit() for f in action.fixes])
        return ReviewObservation(
            command=action.command,
            result="success",
            applied=result.applied,
            files_changed=result.files,
            backups=result.backups,
        )

    def _lint(self, action: ReviewAction) -> ReviewObservation:
        """Compile manuscripts and collect warnings."""
        config = load_config(self.workspace_dir)
        files = self._resolve_files(action, config.project.catalog)
        diagnostics = lint_project(self.workspace_dir, files, config.check.target)

        return ReviewObservation(
            command=action.command,
            result="warning" if diagnostics else "success",
            diagnostics=[d.to_dict() for d in diagnostics],
        )


class ReviewProjectTool(ToolDefinition[ReviewAction, ReviewObservation]):
    """Tool for checking tags and fixing IDs in a Re:VIEW book project."""

    @classmethod
    def create(cls, conv_state: ConversationState) -> Sequence[ReviewProjectTool]:
        """Create the Re:VIEW manuscript tool.

        Args:
            conv_state: Conversation state with workspace info.
        """
        workspace_dir = Path(conv_state.workspace.working_dir)
        executor = ReviewExecutor(workspace_dir)

        return [
            cls(
                description=REVIEW_TOOL_DESCRIPTION,
                action_type=ReviewAction,
                observation_type=ReviewObservation,
                annotations=ToolAnnotations(
                    title="Re:VIEW Manuscript Tool",
                ),
                executor=executor,
            )
        ]
