"""Persistent loop state stored under the .rauf directory."""

from __future__ import annotations

import contextlib
import json
import os
import re
import sys
import tempfile
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

STATE_DIR = ".rauf"
MAX_SUMMARY_BYTES = 4 * 1024

_TIME_RE = re.compile(r"^(?P<base>.*?T\d{2}:\d{2}:\d{2})(?P<frac>\.\d+)?(?P<tz>.*)$")


def state_path() -> Path:
    """Default location of the JSON state file."""
    return Path(STATE_DIR) / "state.json"


def state_summary_path() -> Path:
    """Default location of the human-readable state summary."""
    return Path(STATE_DIR) / "state.md"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _parse_time(text: Any) -> datetime:
    if not isinstance(text, str):
        raise ValueError(f"expected a timestamp string, got {text!r}")
    match = _TIME_RE.match(text.strip())
    if not match:
        raise ValueError(f"invalid timestamp {text!r}")
    frac = match.group("frac") or ""
    if frac:
        frac = "." + frac[1:7].ljust(6, "0")
    tz = match.group("tz")
    if tz in ("Z", "z"):
        tz = "+00:00"
    parsed = datetime.fromisoformat(match.group("base") + frac + tz)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _scalar(name: str, value: Any, kind: type) -> Any:
    """Validate a JSON scalar against the expected Python type."""
    if value is None:
        return kind()
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"field {name!r}: expected integer, got {value!r}")
    elif kind is bool:
        if not isinstance(value, bool):
            raise ValueError(f"field {name!r}: expected boolean, got {value!r}")
    elif not isinstance(value, kind):
        raise ValueError(f"field {name!r}: expected {kind.__name__}, got {value!r}")
    return value


def _require_mapping(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


@dataclass
class Assumption:
    """An assumption the agent declared while working."""

    question: str = ""
    type: str = ""
    created_iteration: int = 0
    created_recovery_mode: str = ""
    sticky_scope: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "type": self.type,
            "created_iteration": self.created_iteration,
            "created_recovery_mode": self.created_recovery_mode,
            "sticky_scope": self.sticky_scope,
        }

    @classmethod
    def _base_kwargs(cls, data: dict) -> dict[str, Any]:
        return {
            name: _scalar(name, data[name], kind)
            for name, kind in (
                ("question", str),
                ("type", str),
                ("created_iteration", int),
                ("created_recovery_mode", str),
                ("sticky_scope", str),
            )
            if name in data
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Assumption":
        return cls(**cls._base_kwargs(_require_mapping(data, "assumption")))


@dataclass
class ArchivedAssumption(Assumption):
    """An assumption that was cleared, with the reason it was cleared."""

    cleared_reason: str = ""
    cleared_iteration: int = 0
    cleared_recovery_mode: str = ""
    related_verify_hash: str = ""
    archived_at: datetime = field(default_factory=_now_utc)

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["cleared_reason"] = self.cleared_reason
        out["cleared_iteration"] = self.cleared_iteration
        out["cleared_recovery_mode"] = self.cleared_recovery_mode
        if self.related_verify_hash:
            out["related_verify_hash"] = self.related_verify_hash
        out["archived_at"] = _format_time(self.archived_at)
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "ArchivedAssumption":
        data = _require_mapping(data, "archived assumption")
        kwargs = cls._base_kwargs(data)
        for name, kind in (
            ("cleared_reason", str),
            ("cleared_iteration", int),
            ("cleared_recovery_mode", str),
            ("related_verify_hash", str),
        ):
            if name in data:
                kwargs[name] = _scalar(name, data[name], kind)
        if data.get("archived_at") is not None:
            kwargs["archived_at"] = _parse_time(data["archived_at"])
        return cls(**kwargs)


@dataclass
class Hypothesis:
    """A hypothesis recorded after repeated verification failures."""

    timestamp: datetime = field(default_factory=_now_utc)
    iteration: int = 0
    hypothesis: str = ""
    different_action: str = ""
    verify_command: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": _format_time(self.timestamp),
            "iteration": self.iteration,
            "hypothesis": self.hypothesis,
            "different_action": self.different_action,
            "verify_command": self.verify_command,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Hypothesis":
        data = _require_mapping(data, "hypothesis")
        kwargs: dict[str, Any] = {
            name: _scalar(name, data[name], kind)
            for name, kind in (
                ("iteration", int),
                ("hypothesis", str),
                ("different_action", str),
                ("verify_command", str),
            )
            if name in data
        }
        if data.get("timestamp") is not None:
            kwargs["timestamp"] = _parse_time(data["timestamp"])
        return cls(**kwargs)


_LIST_TYPES: dict[str, Callable[[Any], Any]] = {
    "hypotheses": Hypothesis.from_dict,
    "assumptions": Assumption.from_dict,
    "archived_assumptions": ArchivedAssumption.from_dict,
}

_OMIT_EMPTY = frozenset(
    {
        "current_model",
        "escalation_count",
        "min_strong_iterations_remaining",
        "consecutive_guardrail_fails",
        "no_progress_streak",
        "last_escalation_reason",
        "recovery_mode",
        "hypotheses",
        "assumptions",
        "archived_assumptions",
    }
)


@dataclass
class RaufState:
    """Everything carried from one iteration of the loop to the next."""

    last_verification_output: str = ""
    last_verification_command: str = ""
    last_verification_status: str = ""
    last_verification_hash: str = ""
    prior_guardrail_status: str = ""
    prior_guardrail_reason: str = ""
    prior_exit_reason: str = ""
    plan_hash_before: str = ""
    plan_hash_after: str = ""
    plan_diff_summary: str = ""
    prior_retry_count: int = 0
    prior_retry_reason: str = ""
    consecutive_verify_fails: int = 0
    backpressure_injected: bool = False
    current_model: str = ""
    escalation_count: int = 0
    min_strong_iterations_remaining: int = 0
    consecutive_guardrail_fails: int = 0
    no_progress_streak: int = 0
    last_escalation_reason: str = ""
    recovery_mode: str = ""
    hypotheses: list[Hypothesis] = field(default_factory=list)
    assumptions: list[Assumption] = field(default_factory=list)
    archived_assumptions: list[ArchivedAssumption] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-ready dict; optional fields are left out when empty."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _OMIT_EMPTY and not value:
                continue
            if f.name in _LIST_TYPES:
                out[f.name] = [item.to_dict() for item in value]
            else:
                out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "RaufState":
        """Build a state from parsed JSON; raises ValueError on malformed data."""
        data = _require_mapping(data, "state")
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            raw = data[f.name]
            if f.name in _LIST_TYPES:
                if raw is None:
                    kwargs[f.name] = []
                    continue
                if not isinstance(raw, list):
                    raise ValueError(f"field {f.name!r}: expected a list")
                kwargs[f.name] = [_LIST_TYPES[f.name](item) for item in raw]
            else:
                kwargs[f.name] = _scalar(f.name, raw, type(f.default))
        return cls(**kwargs)


def _warn(message: str) -> None:
    print(f"Warning: {message}", file=sys.stderr)


def load_state(path: str | os.PathLike[str] | None = None) -> RaufState:
    """Read the state file; an unreadable or malformed file yields an empty state."""
    target = Path(path) if path is not None else state_path()
    try:
        text = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return RaufState()
    except OSError as exc:
        _warn(f"failed to read state file {target}: {exc}")
        return RaufState()
    try:
        return RaufState.from_dict(json.loads(text))
    except (ValueError, TypeError) as exc:
        _warn(f"failed to parse state file {target}: {exc} (using empty state)")
        return RaufState()


def _atomic_write(target: Path, text: str, prefix: str, suffix: str, sync: bool) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            if sync:
                handle.flush()
                os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def save_state(
    state: RaufState,
    path: str | os.PathLike[str] | None = None,
    summary_path: str | os.PathLike[str] | None = None,
) -> None:
    """Atomically write the state file, then refresh the markdown summary.

    Failure to write the state raises OSError; failure to write the summary
    only prints a warning.
    """
    target = Path(path) if path is not None else state_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    data = json.dumps(state.to_dict(), indent=2, ensure_ascii=False)
    _atomic_write(target, data, prefix=".state-", suffix=".json.tmp", sync=True)
    try:
        write_state_summary(state, summary_path)
    except OSError as exc:
        _warn(f"failed to write state summary: {exc}")


def _render_summary(state: RaufState) -> str:
    lines = [
        "# rauf state",
        "",
        f"Updated: {_now_utc().strftime('%Y-%m-%dT%H:%M:%SZ')}",
        "",
        f"Last verification status: {state.last_verification_status or 'unknown'}",
        "Last verification command: "
        + (state.last_verification_command if state.last_verification_command.strip() else "none"),
    ]
    if state.last_verification_output.strip():
        lines += [
            "",
            "Last verification output (truncated):",
            "",
            "```text",
            truncate_state_summary(state.last_verification_output),
            "```",
        ]
    if state.current_model or state.escalation_count > 0:
        lines += ["", "## Model Escalation", "", f"Current model: {state.current_model or 'default'}"]
        if state.escalation_count > 0:
            lines.append(f"Escalations: {state.escalation_count}")
        if state.min_strong_iterations_remaining > 0:
            lines.append(f"Min strong iterations remaining: {state.min_strong_iterations_remaining}")
        if state.last_escalation_reason:
            lines.append(f"Last escalation reason: {state.last_escalation_reason}")
    if state.recovery_mode:
        lines += ["", "## Recovery Mode", "", f"Mode: {state.recovery_mode}"]
    return "\n".join(lines) + "\n"


def write_state_summary(state: RaufState, path: str | os.PathLike[str] | None = None) -> None:
    """Atomically write a short markdown summary of the state."""
    target = Path(path) if path is not None else state_summary_path()
    _atomic_write(
        target, _render_summary(state), prefix=".state-summary-", suffix=".md.tmp", sync=False
    )


def truncate_state_summary(value: str) -> str:
    """Cut a string to at most 4 KiB of UTF-8 without splitting a character."""
    encoded = value.encode("utf-8")
    if len(encoded) <= MAX_SUMMARY_BYTES:
        return value
    return encoded[:MAX_SUMMARY_BYTES].decode("utf-8", errors="ignore")


def add_assumption(
    state: RaufState,
    question: str,
    sticky_scope: str,
    iteration: int,
    recovery_mode: str,
) -> RaufState:
    """Return a state with the assumption added, unless the question is already tracked."""
    if any(existing.question == question for existing in state.assumptions):
        return state
    new = Assumption(
        question=question,
        type="ASSUMPTION",
        created_iteration=iteration,
        created_recovery_mode=recovery_mode,
        sticky_scope=sticky_scope,
    )
    return replace(state, assumptions=[*state.assumptions, new])


def archive_assumptions(
    state: RaufState,
    mode_to_clear: str,
    reason: str,
    iteration: int,
    verify_hash: str,
) -> RaufState:
    """Return a state with non-sticky assumptions from the given recovery mode archived."""
    active: list[Assumption] = []
    archived = list(state.archived_assumptions)
    for item in state.assumptions:
        if item.sticky_scope == "" and item.created_recovery_mode == mode_to_clear:
            archived.append(
                ArchivedAssumption(
                    question=item.question,
                    type=item.type,
                    created_iteration=item.created_iteration,
                    created_recovery_mode=item.created_recovery_mode,
                    sticky_scope=item.sticky_scope,
                    cleared_reason=reason,
                    cleared_iteration=iteration,
                    cleared_recovery_mode=mode_to_clear,
                    related_verify_hash=verify_hash,
                    archived_at=datetime.now().astimezone(),
                )
            )
        else:
            active.append(item)
    return replace(state, assumptions=active, archived_assumptions=archived)