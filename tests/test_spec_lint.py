import pytest

from rauf.spec_lint import (
    SpecLintError,
    check_completion_artifacts,
    contains_tbd,
    lint_spec_completion_contract,
    lint_specs,
    parse_completion_contract,
)

VALID = """---
status: stable
---
## Completion Contract
Verification Commands:
- go test ./...
"""

MISSING_CONTRACT = """---
status: stable
---
## Other Section
"""

TBD = """---
status: stable
---
## Completion Contract
Verification Commands:
- TBD
"""

ARTIFACT_SPEC = """---
status: stable
---
## Completion Contract
Artifacts/Flags:
- out.bin
"""


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write_spec(workspace, name, content):
    specs = workspace / "specs"
    specs.mkdir(exist_ok=True)
    (specs / name).write_text(content, encoding="utf-8")


def test_lint_no_specs_dir(workspace):
    assert lint_specs() is None


def test_lint_empty_specs_dir(workspace):
    (workspace / "specs").mkdir()
    assert lint_specs() is None


def test_lint_valid_spec(workspace):
    write_spec(workspace, "valid.md", VALID)
    assert lint_specs() is None


def test_lint_missing_contract(workspace):
    write_spec(workspace, "invalid.md", MISSING_CONTRACT)
    with pytest.raises(SpecLintError, match="missing Completion Contract section") as info:
        lint_specs()
    assert len(info.value.issues) == 1


def test_lint_tbd_command(workspace):
    write_spec(workspace, "valid.md", VALID)
    write_spec(workspace, "tbd.md", TBD)
    with pytest.raises(SpecLintError, match="verification command contains TBD") as info:
        lint_specs()
    assert info.value.issues[0].endswith("tbd.md: verification command contains TBD")


def test_lint_skips_drafts_and_templates(workspace):
    write_spec(workspace, "draft.md", "---\nstatus: draft\n---\n## Other\n")
    write_spec(workspace, "README.md", MISSING_CONTRACT)
    write_spec(workspace, "_TEMPLATE.md", MISSING_CONTRACT)
    write_spec(workspace, "notes.txt", MISSING_CONTRACT)
    assert lint_specs() is None


def test_lint_spec_without_commands(workspace):
    write_spec(workspace, "empty.md", "## Completion Contract\nSuccess condition:\n- it works\n")
    contract, issues = lint_spec_completion_contract("specs/empty.md")
    assert contract.found is True
    assert issues == ["no verification commands in Completion Contract"]


def test_parse_numbered_heading_and_lists(tmp_path):
    spec = tmp_path / "spec.md"
    spec.write_text(
        "# Title\n"
        "## 4. Completion Contract\n"
        "Verification Commands:\n"
        "- `go test ./...`\n"
        "* go vet ./...\n"
        "\n"
        "- ignored after blank line\n"
        "Artifacts/Flags:\n"
        "- dist/app\n"
        "## Next Section\n"
        "Verification Commands:\n"
        "- not included\n",
        encoding="utf-8",
    )
    contract = parse_completion_contract(spec)
    assert contract.found is True
    assert contract.section_title == "4. Completion Contract"
    assert contract.verify_cmds == ["go test ./...", "go vet ./..."]
    assert contract.artifacts == ["dist/app"]


def test_parse_ignores_fenced_content(tmp_path):
    spec = tmp_path / "spec.md"
    spec.write_text(
        "```\n## Completion Contract\n```\n"
        "## Completion Contract\n"
        "Verification Commands:\n"
        "```sh\n- fenced command\n```\n"
        "- make test\n",
        encoding="utf-8",
    )
    contract = parse_completion_contract(spec)
    assert contract.verify_cmds == ["make test"]


def test_parse_without_contract(tmp_path):
    spec = tmp_path / "spec.md"
    spec.write_text(MISSING_CONTRACT, encoding="utf-8")
    contract = parse_completion_contract(spec)
    assert contract.found is False
    assert contract.verify_cmds == []


def test_parse_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        parse_completion_contract(tmp_path / "nope.md")


@pytest.mark.parametrize("value,expected", [("TBD", True), ("run tbd later", True), ("make", False)])
def test_contains_tbd(value, expected):
    assert contains_tbd(value) is expected


def test_check_artifacts_missing(workspace):
    (workspace / "spec.md").write_text(ARTIFACT_SPEC, encoding="utf-8")
    result = check_completion_artifacts(["spec.md"])
    assert result.ok is False
    assert "missing artifacts: out.bin" in result.reason
    assert result.satisfied_specs == []
    assert result.verified_artifacts == []


def test_check_artifacts_satisfied(workspace):
    (workspace / "spec.md").write_text(ARTIFACT_SPEC, encoding="utf-8")
    (workspace / "out.bin").write_bytes(b"data")
    result = check_completion_artifacts(["spec.md"])
    assert result.ok is True
    assert result.reason == ""
    assert result.satisfied_specs == ["spec.md"]
    assert result.verified_artifacts == ["out.bin"]


def test_check_artifacts_no_refs():
    result = check_completion_artifacts([])
    assert (result.ok, result.reason, result.satisfied_specs) == (True, "", [])


def test_check_artifacts_invalid_and_unreadable(workspace):
    result = check_completion_artifacts(["../outside.md", "absent.md"])
    assert result.ok is False
    assert "../outside.md: invalid spec path" in result.reason
    assert "absent.md:" in result.reason


def test_check_artifacts_spec_without_artifacts(workspace):
    (workspace / "spec.md").write_text(VALID, encoding="utf-8")
    result = check_completion_artifacts(["spec.md"])
    assert result.ok is True
    assert result.satisfied_specs == ["spec.md"]
    assert result.verified_artifacts == []