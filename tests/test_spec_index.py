import os

import pytest

from rauf.spec_index import list_specs, read_spec_status


@pytest.fixture
def specs_workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "specs").mkdir()
    return tmp_path / "specs"


def test_list_specs_various(specs_workspace):
    (specs_workspace / "stable.md").write_text("---\nstatus: stable\n---\n")
    (specs_workspace / "draft.md").write_text("---\nstatus: draft\n---\n")
    (specs_workspace / "nostatus.md").write_text("---\nfoo: bar\n---\n")
    (specs_workspace / "notfrontmatter.md").write_text("hello\n")

    entries = list_specs()
    sep = os.sep
    assert f"specs{sep}stable.md (status: stable)" in entries
    assert f"specs{sep}draft.md (status: draft)" in entries
    assert f"specs{sep}nostatus.md (status: unknown)" in entries
    assert f"specs{sep}notfrontmatter.md (status: unknown)" in entries


def test_list_specs_sorted_and_filtered(specs_workspace):
    (specs_workspace / "b.md").write_text("---\nstatus: b\n---\n")
    (specs_workspace / "a.md").write_text("---\nstatus: a\n---\n")
    (specs_workspace / "notes.txt").write_text("---\nstatus: x\n---\n")
    (specs_workspace / "sub.md").mkdir()

    sep = os.sep
    assert list_specs() == [
        f"specs{sep}a.md (status: a)",
        f"specs{sep}b.md (status: b)",
    ]


def test_list_specs_missing_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        list_specs()


def test_list_specs_custom_dir(tmp_path):
    custom = tmp_path / "other"
    custom.mkdir()
    (custom / "x.md").write_text("---\nstatus: ready\n---\n")
    assert list_specs(custom) == [f"{os.path.join(str(custom), 'x.md')} (status: ready)"]


def test_read_spec_status_trims_value(tmp_path):
    spec = tmp_path / "s.md"
    spec.write_text("---\ntitle: x\nstatus:   approved  \n---\nbody\n")
    assert read_spec_status(spec) == "approved"


def test_read_spec_status_ignores_status_outside_frontmatter(tmp_path):
    spec = tmp_path / "s.md"
    spec.write_text("status: stray\n---\ntitle: x\n---\nstatus: after\n")
    assert read_spec_status(spec) == ""


def test_read_spec_status_missing_file(tmp_path):
    assert read_spec_status(tmp_path / "absent.md") == ""