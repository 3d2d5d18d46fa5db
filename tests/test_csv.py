import pytest

from qpi_tracker.core.errors import CSVImportError, InvalidGradeError
from qpi_tracker.processing.csv_export import (
    FULL_HEADERS,
    REIMPORT_HEADERS,
    export_academic_record_to_csv,
    export_grades_to_csv,
    export_semester_summary,
    format_csv_value,
    generate_csv_filename,
)
from qpi_tracker.processing.csv_import import (
    convert_csv_to_grades,
    import_csv_into_store,
    normalize_academic_year,
    parse_csv,
    parse_grade_entry,
    validate_csv_structure,
)


@pytest.fixture
def populated(store, grade_data):
    store.initialize_academic_record({"total_years": 4, "includes_summer": False})
    sem = store.add_semester({"year_level": 1, "semester_type": "first", "academic_year": "2023-2024"})
    store.add_grade(grade_data(sem.id, code="CS101", units=3, grade=95, course_title="Intro, Part 1"))
    store.add_grade(grade_data(sem.id, code="MA101", units=4, grade=87))
    return store


def test_format_csv_value_quotes_when_needed():
    assert format_csv_value("plain") == "plain"
    assert format_csv_value("a,b") == '"a,b"'
    assert format_csv_value('say "hi"') == '"say ""hi"""'
    assert format_csv_value("a;b", delimiter=";") == '"a;b"'
    assert format_csv_value(None) == ""
    assert format_csv_value(3.0) == "3"


def test_export_full_layout(populated):
    text = export_grades_to_csv(populated.grades, populated.semesters)
    lines = text.split("\n")

    assert lines[0] == ",".join(FULL_HEADERS)
    assert lines[1] == 'CS101,"Intro, Part 1",3,95,B+,3.5,10.5,first,2023-2024,1,'
    assert len(lines) == 3


def test_export_empty():
    assert export_grades_to_csv([]) == ",".join(FULL_HEADERS)
    assert export_grades_to_csv([], include_headers=False) == ""


def test_export_record_with_summary(populated):
    text = export_academic_record_to_csv(
        populated.academic_record, populated.semesters, populated.grades, include_summary=True
    )
    assert "=== ACADEMIC SUMMARY ===" in text
    assert "Total Units: 7" in text
    assert "Cumulative QPI: 2.93" in text
    assert "Includes Summer: No" in text

    reimport = export_academic_record_to_csv(
        populated.academic_record, populated.semesters, populated.grades,
        include_summary=True, for_reimport=True,
    )
    assert "ACADEMIC SUMMARY" not in reimport
    assert reimport.split("\n")[0] == ",".join(REIMPORT_HEADERS)


def test_export_record_semester_filter(populated):
    text = export_academic_record_to_csv(
        populated.academic_record, populated.semesters, populated.grades, semester_filter=[]
    )
    assert text == ",".join(FULL_HEADERS)


def test_semester_summary(populated):
    text = export_semester_summary(populated.semesters[0], populated.grades)
    assert text.startswith("Semester,first\nAcademic Year,2023-2024")
    assert "QPI,2.93" in text
    assert '"Intro, Part 1"' in text


def test_generate_csv_filename():
    name = generate_csv_filename("record")
    assert name.startswith("record_") and name.endswith(".csv")


def test_reimport_round_trip(populated, store_factory):
    text = export_grades_to_csv(populated.grades, populated.semesters, for_reimport=True)

    target = store_factory()
    added = import_csv_into_store(target, text)

    assert len(added) == 2
    assert len(target.semesters) == 1
    assert target.semesters[0].academic_year == "2023-2024"
    assert target.semesters[0].semester_qpi == pytest.approx(20.5 / 7)
    assert target.grades[0].course_title == "Intro, Part 1"


def test_import_reuses_existing_semester(store):
    sem = store.add_semester({"year_level": 2, "semester_type": "second", "academic_year": "2023-2024"})
    csv_text = (
        "courseCode,courseTitle,units,numericalGrade,semester,academicYear\n"
        "CS201,Data Structures,3,98,second,2024\n"
    )
    import_csv_into_store(store, csv_text)

    assert len(store.semesters) == 1
    assert store.grades[0].semester_id == sem.id


def test_import_into_target_semester(store, semester):
    csv_text = "\ufeffCourse Code,Course Title,Units,Numerical Grade\nCS101,Intro,3,90\n"
    added = import_csv_into_store(store, csv_text, semester_id=semester.id)
    assert added[0].semester_id == semester.id
    assert added[0].letter_grade == "B"


def test_import_without_context_needs_target(store):
    csv_text = "Course Code,Course Title,Units,Numerical Grade\nCS101,Intro,3,90\n"
    with pytest.raises(CSVImportError):
        import_csv_into_store(store, csv_text)
    assert store.grades == []


def test_import_checks_every_row_before_creating_semesters(store):
    csv_text = (
        "Course Code,Course Title,Units,Numerical Grade,Semester,Academic Year\n"
        "CS101,Intro,3,90,first,2023-2024\n"
        "MA101,Calculus,3,90,second,\n"
    )
    with pytest.raises(CSVImportError) as excinfo:
        import_csv_into_store(store, csv_text)

    assert excinfo.value.errors == ["Row 2: missing semester context"]
    assert store.semesters == []
    assert store.grades == []
    assert store.storage.load_semesters() == []


def test_template_slots_survive_reimport(store, store_factory):
    template = {
        "semesters": [
            {
                "year_level": 1,
                "semester_type": "first",
                "courses": [
                    {"id": "cs1", "course_code": "CS101", "title": "Intro", "units": 3},
                    {"id": "ma1", "course_code": "MA101", "title": "Calculus", "units": 4},
                ],
            }
        ]
    }
    store.load_template(template, start_year=2023)
    store.update_grade(store.grades[0].id, numerical_grade=98)
    text = export_grades_to_csv(store.grades, store.semesters, for_reimport=True)

    target = store_factory()
    added = import_csv_into_store(target, text)

    assert [g.numerical_grade for g in added] == [98, None]
    assert added[1].letter_grade is None
    assert target.semesters[0].semester_qpi == 4.0


def test_validation_collects_every_problem():
    rows = parse_csv(
        "Course Code,Course Title,Units,Numerical Grade,Semester,Year Level\n"
        "CS,Intro,0,101,winter,9\n"
    )
    result = validate_csv_structure(rows)

    assert not result.is_valid
    assert len(result.errors) == 5
    assert result.errors[0].startswith("Row 1: Invalid units")


def test_missing_columns():
    result = validate_csv_structure(parse_csv("Course Code,Units\nCS101,3\n"))
    assert not result.is_valid
    assert any("Course Title" in e for e in result.errors)

    with pytest.raises(CSVImportError) as excinfo:
        convert_csv_to_grades(parse_csv("Course Code,Units\nCS101,3\n"))
    assert excinfo.value.errors == result.errors


def test_empty_csv():
    assert parse_csv("") == []
    assert convert_csv_to_grades([]).grades == []


def test_normalize_academic_year():
    assert normalize_academic_year("2021") == "2020-2021"
    assert normalize_academic_year("2020-2021") == "2020-2021"
    assert normalize_academic_year("") == ""


@pytest.mark.parametrize(
    "entry, letter, points, numeric",
    [
        ("95", "B+", 3.5, 95.0),
        ("b+", "B+", 3.5, None),
        ("inc", "INC", 0.0, None),
    ],
)
def test_parse_grade_entry(entry, letter, points, numeric):
    parsed = parse_grade_entry(entry)
    assert (parsed.letter_grade, parsed.grade_point, parsed.numerical_grade) == (letter, points, numeric)


@pytest.mark.parametrize("entry", ["", "Z", "150"])
def test_parse_grade_entry_rejects(entry):
    with pytest.raises(InvalidGradeError):
        parse_grade_entry(entry)
