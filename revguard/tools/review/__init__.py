"""Re:VIEW tag and ID scanning engine."""

from .allowlist import BUILTIN_ALLOWLIST, Allowlist, find_violations, is_violation
from .applier import ApplyError, ApplyResult, StaleFixError, apply_fixes
from .diagnostics import Diagnostic, parse_stderr
from .ids import UsedIdSet, collect_used_ids, parse_id_attribute
from .matcher import (
    BlockOpen,
    InlineTag,
    TagOccurrence,
    iter_tags,
    recognize_block_close,
    recognize_block_open,
    recognize_inline,
)
from .planner import FixEdit, plan_documents, plan_fixes, slugify_prefix

__all__ = [
    "Allowlist",
    "BUILTIN_ALLOWLIST",
    "find_violations",
    "is_violation",
    "ApplyError",
    "ApplyResult",
    "StaleFixError",
    "apply_fixes",
    "Diagnostic",
    "parse_stderr",
    "UsedIdSet",
    "collect_used_ids",
    "parse_id_attribute",
    "BlockOpen",
    "InlineTag",
    "TagOccurrence",
    "iter_tags",
    "recognize_block_close",
    "recognize_block_open",
    "recognize_inline",
    "FixEdit",
    "plan_documents",
    "plan_fixes",
    "slugify_prefix",
]
