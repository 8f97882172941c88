"""Checks on the Completion Contract section of spec files."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .fences import FenceState
from .repo_paths import repo_relative_path, resolve_repo_path
from .spec_index import read_spec_status

_SKIPPED_SPECS = frozenset({"_TEMPLATE.md", "README.md"})
_NUMBERING_CHARS = "0123456789.) \t"


class SpecLintError(Exception):
    """One or more specs failed linting."""

    def __init__(self, message: str, issues: list[str] | None = None):
        super().__init__(message)
        self.issues = list(issues or [])


@dataclass
class CompletionContract:
    """What a spec's Completion Contract section declares."""

    found: bool = False
    verify_cmds: list[str] = field(default_factory=list)
    artifacts: list[str] = field(default_factory=list)
    section_title: str = ""


@dataclass
class ArtifactCheck:
    """Result of checking completion artifacts for a set of specs."""

    ok: bool = True
    reason: str = ""
    satisfied_specs: list[str] = field(default_factory=list)
    verified_artifacts: list[str] = field(default_factory=list)


def lint_specs(specs_dir: str | os.PathLike[str] = "specs") -> None:
    """Lint every non-draft spec; raise SpecLintError listing all problems.

    A missing specs directory is not an error.
    """
    try:
        with os.scandir(specs_dir) as it:
            items = sorted(it, key=lambda entry: entry.name)
    except FileNotFoundError:
        return
    except OSError as exc:
        raise SpecLintError(f"spec lint: unable to read specs/: {exc}") from exc

    issues: list[str] = []
    for item in items:
        if item.is_dir() or not item.name.endswith(".md") or item.name in _SKIPPED_SPECS:
            continue
        path = os.path.join(os.fspath(specs_dir), item.name)
        if read_spec_status(path).lower() == "draft":
            continue
        try:
            contract, lint_issues = lint_spec_completion_contract(path)
        except OSError as exc:
            issues.append(f"{path}: {exc}")
            continue
        if not contract.found:
            issues.append(f"{path}: missing Completion Contract section")
            continue
        if lint_issues:
            issues.append(f"{path}: {'; '.join(lint_issues)}")
    if issues:
        raise SpecLintError("spec lint failed:\n- " + "\n- ".join(issues), issues)


def lint_spec_completion_contract(
    path: str | os.PathLike[str],
) -> tuple[CompletionContract, list[str]]:
    """Parse a spec's contract and list what is wrong with it."""
    contract = parse_completion_contract(path)
    issues: list[str] = []
    if not contract.found:
        return contract, issues
    if not contract.verify_cmds:
        issues.append("no verification commands in Completion Contract")
    if any(contains_tbd(cmd) for cmd in contract.verify_cmds):
        issues.append("verification command contains TBD")
    return contract, issues


def _is_contract_title(title: str) -> bool:
    lowered = title.lower().lstrip(_NUMBERING_CHARS) or title.lower()
    return lowered == "completion contract" or lowered.startswith(
        ("completion contract ", "completion contract:", "completion contract(")
    )


def parse_completion_contract(path: str | os.PathLike[str]) -> CompletionContract:
    """Read the Completion Contract section of a spec; raises OSError if unreadable."""
    contract = CompletionContract()
    in_section = False
    current_list = ""
    fence = FenceState()
    with open(path, encoding="utf-8", errors="replace") as handle:
        for raw in handle:
            trimmed = raw.strip()
            in_fence = fence.process_line(trimmed)

            if trimmed.startswith("## ") and not in_fence:
                title = trimmed[len("## "):].strip()
                if in_section:
                    break
                if _is_contract_title(title):
                    in_section = True
                    contract.found = True
                    contract.section_title = title
                    continue

            if not in_section:
                continue
            if not trimmed:
                current_list = ""
                continue
            if in_fence:
                continue

            label = trimmed.removesuffix(":").lower()
            if label == "verification commands":
                current_list = "verify"
                continue
            if label == "artifacts/flags":
                current_list = "artifacts"
                continue
            if label == "success condition":
                current_list = ""
                continue

            if trimmed.startswith(("-", "*")):
                entry = trimmed.lstrip("-*").strip().strip("`")
                if not entry or not current_list:
                    continue
                if current_list == "verify":
                    contract.verify_cmds.append(entry)
                else:
                    contract.artifacts.append(entry)
    return contract


def contains_tbd(value: str) -> bool:
    """True if the text contains "tbd" in any letter case."""
    return "tbd" in value.lower()


def check_completion_artifacts(spec_refs: list[str]) -> ArtifactCheck:
    """Check that every artifact the referenced specs promise exists."""
    if not spec_refs:
        return ArtifactCheck()
    failures: list[str] = []
    satisfied: list[str] = []
    verified: list[str] = []
    for spec in spec_refs:
        spec_path = resolve_repo_path(spec)
        if spec_path is None:
            failures.append(f"{spec}: invalid spec path")
            continue
        try:
            contract = parse_completion_contract(spec_path)
        except OSError as exc:
            failures.append(f"{spec}: {exc}")
            continue
        if not contract.found:
            continue
        spec_label = repo_relative_path(spec_path)
        candidates = [
            resolved
            for resolved in (resolve_repo_path(a.strip()) for a in contract.artifacts if a.strip())
            if resolved is not None
        ]
        if not candidates:
            satisfied.append(spec_label)
            continue
        missing: list[str] = []
        for candidate in candidates:
            try:
                os.stat(candidate)
            except FileNotFoundError:
                missing.append(repo_relative_path(candidate))
            except OSError as exc:
                failures.append(
                    f"{spec}: cannot access artifact {repo_relative_path(candidate)}: {exc}"
                )
            else:
                verified.append(repo_relative_path(candidate))
        if missing:
            failures.append(f"{spec} missing artifacts: {', '.join(missing)}")
        else:
            satisfied.append(spec_label)
    if failures:
        return ArtifactCheck(False, "; ".join(failures), satisfied, verified)
    return ArtifactCheck(True, "", satisfied, verified)