"""Normalisation of configured policies and handling of failed verifications."""

from __future__ import annotations

import subprocess
import sys
from datetime import datetime
from typing import Callable, Optional

GitRunner = Callable[..., str]

_VERIFY_MISSING_POLICIES = frozenset({"strict", "agent_enforced", "fallback"})
_PLAN_LINT_POLICIES = frozenset({"warn", "fail", "off"})
_WIP_BRANCH_ATTEMPTS = 10


def _run_git(*args: str) -> str:
    """Run git with the given arguments and return its trimmed output.

    Raises subprocess.CalledProcessError on a non-zero exit and OSError if git
    cannot be started.
    """
    result = subprocess.run(
        ["git", *args], capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def normalize_verify_missing_policy(policy: Optional[str], allow_fallback: bool) -> str:
    """Return "strict", "agent_enforced" or "fallback" for a configured policy.

    An empty policy means "fallback" when fallback is allowed and "strict"
    otherwise. "fallback" without permission, and unknown values, become "strict".
    """
    value = (policy or "").strip().lower()
    if not value:
        return "fallback" if allow_fallback else "strict"
    if value not in _VERIFY_MISSING_POLICIES:
        return "strict"
    if value == "fallback" and not allow_fallback:
        print(
            "Warning: verify_missing_policy is 'fallback' but allow_verify_fallback "
            "is false; using 'strict' instead",
            file=sys.stderr,
        )
        return "strict"
    return value


def normalize_plan_lint_policy(policy: Optional[str]) -> str:
    """Return "warn", "fail" or "off"; empty or unknown values become "warn"."""
    value = (policy or "").strip().lower()
    return value if value in _PLAN_LINT_POLICIES else "warn"


def _branch_exists(git: GitRunner, name: str) -> bool:
    """True if a local branch exists; a failing lookup means it does not.

    Raises OSError if git itself cannot be run.
    """
    try:
        git("show-ref", "--verify", "--quiet", f"refs/heads/{name}")
    except OSError:
        raise
    except Exception:
        return False
    return True


def _unique_wip_branch(git: GitRunner) -> Optional[str]:
    base = f"wip/verify-fail-{datetime.now().strftime('%Y%m%d-%H%M%S')}"
    for attempt in range(_WIP_BRANCH_ATTEMPTS):
        candidate = base if attempt == 0 else f"{base}-{attempt}"
        try:
            if not _branch_exists(git, candidate):
                return candidate
        except OSError:
            continue
    return None


def _try_git(git: GitRunner, failure: str, *args: str) -> bool:
    try:
        git(*args)
    except Exception as exc:  # the runner is injectable; any failure is reported
        print(f"{failure}: {exc}", file=sys.stderr)
        return False
    return True


def apply_verify_fail_policy(
    policy: Optional[str],
    head_before: str,
    head_after: str,
    git: Optional[GitRunner] = None,
) -> str:
    """Undo or set aside a commit made in an iteration whose verification failed.

    Returns the HEAD the repository is left at. Policies: "soft_reset" (the
    default), "hard_reset", "wip_branch", "keep_commit" and "no_push_only";
    anything else keeps the commit. Git failures are reported and leave
    ``head_after`` in place.
    """
    run = git or _run_git
    value = (policy or "").strip().lower() or "soft_reset"
    if not head_before or not head_after or head_before == head_after:
        return head_after

    if value == "soft_reset":
        if not _try_git(run, "Verify-fail soft reset failed", "reset", "--soft", head_before):
            return head_after
        print("Verification failed; soft reset applied to keep changes staged.")
        return head_before

    if value == "hard_reset":
        if not _try_git(run, "Verify-fail hard reset failed", "reset", "--hard", head_before):
            return head_after
        print("Verification failed; hard reset applied (discarded working changes).")
        return head_before

    if value == "wip_branch":
        name = _unique_wip_branch(run)
        if name is None:
            print(
                "Verify-fail branch creation failed: could not find unique branch "
                f"name after {_WIP_BRANCH_ATTEMPTS} attempts",
                file=sys.stderr,
            )
            return head_after
        if not _try_git(run, "Verify-fail branch creation failed", "branch", name, head_after):
            return head_after
        if not _try_git(run, "Verify-fail soft reset failed", "reset", "--soft", head_before):
            return head_after
        print(f"Verification failed; moved commit to {name} and soft reset.")
        return head_before

    return head_after