"""Hybrid build pipeline: macro preprocessing followed by review-pdfmaker."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from revguard.book.compiler import RunOptions, run_command
from revguard.book.security import (
    SecurityConfig,
    sanitize_mapfile,
    validate_mapfile_path,
    validate_mapfile_size,
)

logger = logging.getLogger(__name__)

PREPROCESSOR_SCRIPT = "packages/review-macro-shims/bin/review-preprocess.js"
DEFAULT_PATTERN = "articles/**/*.re"
DEFAULT_OUTPUT = ".out"
MAPFILE_PROBE = "test-mapfile.re"

EXTENSIONS_LOADED_PATTERN = re.compile(r"Extensions loaded: (.+)")
NUMBER_PATTERN = re.compile(r"\d+")


@dataclass
class PreprocessStats:
    """Counters printed by the preprocessor with --stats."""

    files_processed: int = 0
    macros_expanded: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass
class PreprocessResult:
    """Result of a preprocessor run."""

    success: bool
    output: str = ""
    stats: PreprocessStats | None = None
    error: str | None = None
    stderr: str = ""


@dataclass
class BuildStep:
    """One step of a hybrid build."""

    step: str  # 'preprocess' or 'pdf-build'
    success: bool
    output: str = ""
    error: str | None = None


@dataclass
class BuildResult:
    """Result of a hybrid PDF build."""

    success: bool
    steps: list[BuildStep] = field(default_factory=list)
    artifacts: list[Path] = field(default_factory=list)
    error: str | None = None


@dataclass
class ExtensionCheckResult:
    """Result of loading review-ext.rb."""

    success: bool
    loaded_extensions: list[str] = field(default_factory=list)
    output: str = ""
    error: str | None = None


@dataclass
class MapfileProbeResult:
    """Result of expanding a single #@mapfile through the preprocessor."""

    success: bool
    processed_content: str = ""
    stats: PreprocessStats | None = None
    error: str | None = None
    issues: list[str] = field(default_factory=list)


def parse_preprocess_stats(output: str) -> PreprocessStats:
    """Extract counters and warning lines from preprocessor output."""
    stats = PreprocessStats()
    for line in output.splitlines():
        if "Files processed:" in line:
            match = NUMBER_PATTERN.search(line)
            stats.files_processed = int(match.group()) if match else 0
        if "Macros expanded:" in line:
            match = NUMBER_PATTERN.search(line)
            stats.macros_expanded = int(match.group()) if match else 0
        if "Warning:" in line:
            stats.warnings.append(line)
    return stats


def preprocess(
    cwd: Path,
    pattern: str = DEFAULT_PATTERN,
    output: str = DEFAULT_OUTPUT,
    stats: bool = True,
) -> PreprocessResult:
    """Expand macros in the manuscripts matching ``pattern`` into ``output``."""
    args = [PREPROCESSOR_SCRIPT, pattern, "-o", output]
    if stats:
        args.append("--stats")

    result = run_command("node", args, RunOptions(cwd=cwd))
    if not result.success:
        return PreprocessResult(
            success=False,
            error=f"Preprocessor exited with status {result.exit_code}",
            stderr=result.stderr,
        )

    return PreprocessResult(
        success=True,
        output=result.stdout,
        stats=parse_preprocess_stats(result.stdout) if stats else None,
    )


def find_generated_pdfs(cwd: Path) -> list[Path]:
    """List PDF files in the project root."""
    try:
        return sorted(p for p in cwd.iterdir() if p.is_file() and p.suffix == ".pdf")
    except OSError:
        return []


def build_pdf_hybrid(
    cwd: Path, config: str = "config.yml", skip_preprocess: bool = False
) -> BuildResult:
    """Preprocess the manuscripts, then build the PDF with review-pdfmaker.

    Args:
        cwd: Project root
        config: Re:VIEW book config passed to review-pdfmaker
        skip_preprocess: Build from the manuscripts as they are
    """
    build = BuildResult(success=False)

    if not skip_preprocess:
        logger.info("Running preprocessor...")
        pre = preprocess(cwd)
        build.steps.append(
            BuildStep(step="preprocess", success=pre.success, output=pre.output, error=pre.error)
        )
        if not pre.success:
            build.error = "Preprocessing failed"
            return build

    logger.info("Building PDF with review-pdfmaker...")
    result = run_command("review-pdfmaker", ["-c", config], RunOptions(cwd=cwd, use_bundle=True))
    if not result.success:
        build.steps.append(
            BuildStep(step="pdf-build", success=False, output=result.stdout, error=result.stderr)
        )
        build.error = "PDF build failed"
        return build

    build.steps.append(BuildStep(step="pdf-build", success=True, output=result.stdout))
    build.success = True
    build.artifacts = find_generated_pdfs(cwd)
    return build


def check_ruby_extensions(cwd: Path) -> ExtensionCheckResult:
    """Load review-ext.rb and report which Re:VIEW files it pulled in."""
    result = run_command(
        "ruby",
        [
            "-r",
            "./review-ext.rb",
            "-e",
            "puts 'Extensions loaded: ' + $LOADED_FEATURES.grep(/review/).join(', ')",
        ],
        RunOptions(cwd=cwd, env={"DEBUG": "1"}),
    )
    if not result.success:
        return ExtensionCheckResult(success=False, output=result.stdout, error=result.stderr)

    match = EXTENSIONS_LOADED_PATTERN.search(result.stdout)
    loaded = [name for name in match.group(1).split(", ") if name] if match else []
    return ExtensionCheckResult(
        success="Extensions loaded" in result.stdout,
        loaded_extensions=loaded,
        output=result.stdout,
    )


def probe_mapfile(cwd: Path, file: str, security: SecurityConfig) -> MapfileProbeResult:
    """Expand one #@mapfile include through the preprocessor.

    The file is checked against the security config first. A probe
    manuscript is written to the project root for the run and removed
    afterwards, whatever the outcome.
    """
    check = validate_mapfile_path(file, security)
    if not check.valid:
        return MapfileProbeResult(success=False, error=check.reason)

    size_check = validate_mapfile_size(file, cwd, security)
    if not size_check.valid:
        return MapfileProbeResult(success=False, error=size_check.reason)

    try:
        content = (cwd / file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return MapfileProbeResult(success=False, error=f"Cannot read file: {e}")

    sanitized = sanitize_mapfile(content)
    if not sanitized.safe:
        return MapfileProbeResult(
            success=False, error="Mapfile content failed the safety scan", issues=sanitized.issues
        )

    probe = cwd / MAPFILE_PROBE
    probe.write_text(f"//list[test]{{\n#@mapfile({file})\n#@end\n//}}\n", encoding="utf-8")
    try:
        result = preprocess(cwd, pattern=MAPFILE_PROBE, output=DEFAULT_OUTPUT, stats=True)
    finally:
        probe.unlink(missing_ok=True)

    if not result.success:
        return MapfileProbeResult(success=False, error=result.error or result.stderr)

    expanded = cwd / DEFAULT_OUTPUT / MAPFILE_PROBE
    try:
        processed = expanded.read_text(encoding="utf-8")
    except OSError:
        processed = ""

    return MapfileProbeResult(success=True, processed_content=processed, stats=result.stats)

