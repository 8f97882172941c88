# rauf

`rauf` is a library of the pieces behind a plan-based coding-agent loop: an
agent works through an implementation plan, each iteration is checked with
shell commands, and a persistent record of what happened lets the next
iteration react to failures.

## Modules

- `rauf.state` – the persistent loop state: `RaufState`, `Assumption`,
  `ArchivedAssumption` and `Hypothesis`, each with `to_dict`/`from_dict`.
  `load_state(path=None)` reads `.rauf/state.json` and returns an empty
  `RaufState` if the file is missing or malformed (printing a warning for the
  latter). `save_state(state, path=None, summary_path=None)` writes the state
  atomically and then a Markdown summary to `.rauf/state.md`; a failure to write
  the summary only prints a warning. `write_state_summary` writes that summary on
  its own, and `truncate_state_summary` cuts text to 4 KiB of UTF-8.
  `add_assumption` and `archive_assumptions` return new states with an
  assumption added, or with non-sticky assumptions from a given recovery mode
  moved to the archive.
- `rauf.spec_index` – `list_specs(specs_dir="specs")` returns entries such as
  `specs/login.md (status: stable)`, sorted by file name, taking the status
  from each file's front matter with `read_spec_status` (`unknown` if absent).
- `rauf.spec_lint` – `lint_specs(specs_dir="specs")` checks that every spec
  except drafts, `_TEMPLATE.md` and `README.md` has a "Completion Contract"
  section with at least one verification command and none containing `TBD`;
  otherwise it raises `SpecLintError`, whose `issues` lists each problem. A
  missing specs directory is not an error. `parse_completion_contract` returns a
  `CompletionContract` (verification commands and artifacts), and
  `check_completion_artifacts(spec_refs)` returns an `ArtifactCheck` saying
  whether every promised artifact exists.
- `rauf.fences` – `FenceState.process_line` and `scan_lines_outside_fence` for
  scanning Markdown while skipping fenced code blocks (backtick or tilde).
- `rauf.repo_paths` – `resolve_repo_path` returns an absolute path only if it
  stays inside the repository root (the current directory), else `None`;
  `repo_relative_path` renders a path relative to that root. The `..._with_root`
  variants take the root explicitly.
- `rauf.runtime_exec` – `RuntimeExec` runs commands on the host shell, in a
  one-shot `docker run` container (`runtime="docker"`), or in a kept container
  (`runtime="docker-persist"`), which it restarts or creates as needed.
  `run_shell` echoes output to the given streams, keeps up to 1 MiB of it and
  raises `RuntimeExecError` on a non-zero exit, timeout or start failure.
  `validate_docker_args` raises `ValueError` for flags such as `--privileged`
  or `--cap-add`; `format_docker_volume` builds the `host:container` mount.
- `rauf.verification` – `run_verification(runner, cmds, log_file=None)` runs
  commands in order, stops at the first failure with `VerificationError`, and
  returns their output each headed by `## Command: <cmd>`.
  `format_verify_commands` joins commands with ` && `;
  `has_completion_sentinel` detects a bare `RAUF_COMPLETE` line outside code
  fences; `prompt_for_mode` maps `architect`, `plan` and anything else to
  `PROMPT_architect.md`, `PROMPT_plan.md` and `PROMPT_build.md`.
- `rauf.strategy` – `StrategyStep`, `IterationResult`, `should_run_step` (the
  `if_` conditions `stalled`, `verify_fail`, `verify_pass`) and
  `should_continue_until` (the `until` conditions `verify_pass`, `verify_fail`).
- `rauf.policies` – `normalize_verify_missing_policy`,
  `normalize_plan_lint_policy`, and `apply_verify_fail_policy`, which handles a
  commit made in an iteration whose verification failed: `soft_reset` (the
  default), `hard_reset`, `wip_branch` (moves the commit to a
  `wip/verify-fail-<timestamp>` branch), or `keep_commit`/`no_push_only`. It
  returns the HEAD left in place.

## Example

```python
from rauf.state import load_state, save_state, add_assumption
from rauf.spec_lint import lint_specs, SpecLintError
from rauf.verification import format_verify_commands, has_completion_sentinel

try:
    lint_specs()
except SpecLintError as exc:
    print(exc)

state = load_state()
state = add_assumption(state, "The API returns UTC timestamps", "", 3, "verify")
save_state(state)

print(format_verify_commands(["go test ./...", "go vet ./..."]))
# go test ./... && go vet ./...

print(has_completion_sentinel("all checks green\nRAUF_COMPLETE\n"))
# True
```

## What the package does not do

There is no command-line program and no loop driver: the package does not run
the agent harness, build or render prompts, read the implementation plan, write
iteration logs, push to git or escalate models. It provides the state, spec,
verification, strategy, policy and execution pieces that such a driver would
use.

## Requirements

Python 3.10 or newer and `python-slugify`. Docker is only needed for the
`docker` and `docker-persist` runtimes, and git only for the verify-fail
policies that move commits.