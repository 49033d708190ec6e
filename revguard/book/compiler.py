"""Running the Re:VIEW command line tools.

Commands run through ``subprocess.run``. A non-zero exit status is part of
the result, never an exception: callers such as the linter need stderr of
failed runs too.
"""

import json
import logging
import os
import re
import subprocess
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60  # seconds
ARTIFACTS_DIR = ".artifacts"
# Artifact records keep at most this many characters of each stream
ARTIFACT_OUTPUT_LIMIT = 100_000
# Characters of stderr echoed to the log for a failed command
LOG_STDERR_LIMIT = 500


@dataclass
class RunOptions:
    """Options for running an external command."""

    cwd: Path
    env: dict[str, str] | None = None
    timeout: float = DEFAULT_TIMEOUT
    use_bundle: bool = False
    save_artifacts: bool = False
    artifacts_dir: Path | None = None  # Defaults to <cwd>/.artifacts


@dataclass
class CommandResult:
    """Outcome of an external command."""

    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    artifact_path: Path | None = None
    command: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def has_bundler(cwd: Path) -> bool:
    """Check whether commands can run through ``bundle exec``.

    Requires a working ``bundle`` executable and a Gemfile in ``cwd``.
    """
    try:
        result = subprocess.run(
            ["bundle", "--version"],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False
    return result.returncode == 0 and (cwd / "Gemfile").exists()


def _safe_name(command: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", command)


def save_artifact(artifacts_dir: Path, command: str, result: CommandResult) -> Path:
    """Write a JSON record of a command run and return its path."""
    artifacts_dir.mkdir(parents=True, exist_ok=True)

    now = datetime.now(UTC)
    stamp = re.sub(r"[:.]", "-", now.isoformat())
    path = artifacts_dir / f"{_safe_name(command)}-{stamp}.json"

    artifact = {
        "command": command,
        "timestamp": now.isoformat(),
        "duration": result.duration_ms,
        "exitCode": result.exit_code,
        "stdout": result.stdout[:ARTIFACT_OUTPUT_LIMIT],
        "stderr": result.stderr[:ARTIFACT_OUTPUT_LIMIT],
    }
    path.write_text(json.dumps(artifact, indent=2), encoding="utf-8")
    return path


def run_command(command: str, args: list[str], options: RunOptions) -> CommandResult:
    """Run a command and capture its output.

    Args:
        command: Executable name, e.g. ``review-compile``
        args: Arguments passed to the executable
        options: Working directory, environment, timeout and bundling

    Returns:
        CommandResult. Timeouts and missing executables are reported as a
        result with exit code 1 (124 for timeouts) and a descriptive stderr.
    """
    argv = [command, *args]
    if options.use_bundle and has_bundler(options.cwd):
        argv = ["bundle", "exec", *argv]

    env = {**os.environ, **options.env} if options.env else None

    start = time.monotonic()
    try:
        completed = subprocess.run(
            argv,
            cwd=options.cwd,
            env=env,
            capture_output=True,
            text=True,
            timeout=options.timeout,
            check=False,
        )
        stdout, stderr, exit_code = completed.stdout, completed.stderr, completed.returncode
    except subprocess.TimeoutExpired:
        stdout, stderr, exit_code = "", f"Command timed out after {options.timeout}s", 124
    except (FileNotFoundError, OSError) as e:
        stdout, stderr, exit_code = "", str(e), 1
    duration_ms = int((time.monotonic() - start) * 1000)

    result = CommandResult(
        stdout=stdout or "",
        stderr=stderr or "",
        exit_code=exit_code,
        duration_ms=duration_ms,
        command=argv,
    )

    if options.save_artifacts:
        artifacts_dir = options.artifacts_dir or options.cwd / ARTIFACTS_DIR
        result.artifact_path = save_artifact(artifacts_dir, command, result)

    command_line = " ".join([command, *args])
    if result.success:
        logger.info("[OK] %s (%dms)", command_line, duration_ms)
    else:
        logger.info("[ERROR] %s (%dms)", command_line, duration_ms)
        if result.stderr:
            logger.debug("STDERR: %s", result.stderr[:LOG_STDERR_LIMIT])

    return result


def review_version(cwd: Path) -> str:
    """Get the version string of the installed Re:VIEW CLI.

    Returns:
        Trimmed output of ``review --version``

    Raises:
        RuntimeError: If the command fails
    """
    result = run_command("review", ["--version"], RunOptions(cwd=cwd, use_bundle=True))
    if not result.success:
        raise RuntimeError(result.stderr.strip() or "review --version failed")
    return result.stdout.strip()


def compile_document(cwd: Path, file: str, target: str = "latex") -> CommandResult:
    """Compile one manuscript file, discarding the output document."""
    return run_command(
        "review-compile",
        [f"--target={target}", "--footnotetext", file],
        RunOptions(cwd=cwd, use_bundle=True),
    )
