import json

import pytest

from qpi_tracker import cli


@pytest.fixture
def run_cli(tmp_path, monkeypatch, capsys):
    """Runs the CLI against a storage file under tmp_path and returns (code, stdout, stderr)."""
    monkeypatch.chdir(tmp_path)
    storage = tmp_path / "store.json"

    def _run(*args):
        code = cli.main(["--storage", str(storage), *args])
        out, err = capsys.readouterr()
        return code, out, err

    return _run


def test_grade_workflow(run_cli, tmp_path):
    assert run_cli("init", "--years", "4")[0] == 0

    code, out, _ = run_cli(
        "add-semester", "--year-level", "1", "--type", "first", "--academic-year", "2023-2024"
    )
    assert code == 0
    semester_id = out.strip()

    code, out, _ = run_cli(
        "add-grade", "--semester-id", semester_id, "--code", "CS101",
        "--title", "Intro", "--units", "3", "--grade", "95",
    )
    assert code == 0
    grade_id, letter = out.split()
    assert letter == "B+"

    run_cli(
        "add-grade", "--semester-id", semester_id, "--code", "MA101",
        "--title", "Calculus", "--units", "4", "--grade", "87",
    )

    code, out, _ = run_cli("list")
    assert "Cumulative QPI: 2.93 over 7 units" in out

    assert run_cli("update-grade", grade_id, "--grade", "98")[0] == 0
    stored = json.loads((tmp_path / "store.json").read_text(encoding="utf-8"))
    grades = json.loads(stored["qpi_grades"])
    assert grades[0]["letter_grade"] == "A"

    code, out, _ = run_cli("export", "--filename", "mine", "--with-summary")
    assert code == 0
    exported = (tmp_path / "data" / "exports" / "mine.csv").read_text(encoding="utf-8-sig")
    assert "=== ACADEMIC SUMMARY ===" in exported

    assert run_cli("remove-semester", semester_id)[0] == 0
    code, out, _ = run_cli("list")
    assert "No semesters yet." in out


def test_invalid_grade_exits_nonzero(run_cli):
    _, out, _ = run_cli(
        "add-semester", "--year-level", "1", "--type", "first", "--academic-year", "2023-2024"
    )
    code, _, err = run_cli(
        "add-grade", "--semester-id", out.strip(), "--code", "CS101",
        "--title", "Intro", "--units", "3", "--grade", "120",
    )
    assert code == 1
    assert "Invalid numerical grade" in err


def test_unknown_grade(run_cli):
    code, _, err = run_cli("remove-grade", "grade-nope")
    assert code == 1
    assert "not found" in err


def test_import_and_backup_restore(run_cli, tmp_path):
    csv_path = tmp_path / "grades.csv"
    csv_path.write_text(
        "Course Code,Course Title,Units,Numerical Grade,Semester,Academic Year,Year Level\n"
        "CS101,Intro,3,98,first,2023-2024,1\n",
        encoding="utf-8",
    )
    code, out, _ = run_cli("import", str(csv_path))
    assert code == 0
    assert "Imported 1 grades." in out

    backup = tmp_path / "backup.json"
    assert run_cli("backup", "--out", str(backup))[0] == 0

    assert run_cli("reset")[0] == 1
    assert run_cli("reset", "--yes")[0] == 0
    assert "No semesters yet." in run_cli("list")[1]

    code, out, _ = run_cli("restore", str(backup))
    assert code == 0
    assert "Restored 1 grades, 1 semesters." in out


def test_import_reports_validation_errors(run_cli, tmp_path):
    csv_path = tmp_path / "bad.csv"
    csv_path.write_text("Course Code,Course Title,Units,Numerical Grade\nX,Intro,9,50\n", encoding="utf-8")

    code, _, err = run_cli("import", str(csv_path))
    assert code == 1
    assert "Row 1: Invalid units" in err


def test_summary_to_file(run_cli, tmp_path):
    out_file = tmp_path / "report.md"
    assert run_cli("summary", "--out", str(out_file))[0] == 0
    assert out_file.read_text(encoding="utf-8").startswith("# QPI Summary")
