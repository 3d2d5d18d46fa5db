import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from qpi_tracker.config.settings import Settings
from qpi_tracker.core.errors import CSVImportError, QPITrackerError
from qpi_tracker.processing.csv_export import export_academic_record_to_csv, export_grades_to_csv
from qpi_tracker.processing.csv_import import import_csv_into_store
from qpi_tracker.processing.summary import SummaryReportGenerator
from qpi_tracker.records.writer import ExportWriter
from qpi_tracker.store.grade_store import GradeStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qpi-tracker", description="Grade and QPI tracker")
    parser.add_argument(
        "--storage",
        type=Path,
        help="Key-value store JSON file (default: $QPI_STORAGE_FILE or data/qpi_store.json)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create the academic record")
    init.add_argument("--years", type=int, default=None, help="Program length in years")
    init.add_argument("--summer", action="store_true", help="Program includes summer terms")
    init.add_argument(
        "--attach-existing",
        action="store_true",
        help="Attach semesters that already exist to the new record",
    )

    sem = sub.add_parser("add-semester", help="Add a semester")
    sem.add_argument("--year-level", type=int, required=True)
    sem.add_argument("--type", dest="semester_type", choices=["first", "second", "summer"], required=True)
    sem.add_argument("--academic-year", required=True, help="e.g. 2023-2024")
    sem.add_argument("--completed", action="store_true")

    grade = sub.add_parser("add-grade", help="Add a course grade to a semester")
    grade.add_argument("--semester-id", required=True)
    grade.add_argument("--code", required=True, help="Course code, e.g. CS101")
    grade.add_argument("--title", required=True)
    grade.add_argument("--units", type=float, required=True)
    grade.add_argument("--grade", type=float, default=None, help="Numerical grade 0-100")
    grade.add_argument("--course-id", default=None)
    grade.add_argument("--notes", default=None)

    upd = sub.add_parser("update-grade", help="Change fields of an existing grade")
    upd.add_argument("grade_id")
    upd.add_argument("--grade", type=float, default=None)
    upd.add_argument("--units", type=float, default=None)
    upd.add_argument("--title", default=None)
    upd.add_argument("--notes", default=None)

    rm_grade = sub.add_parser("remove-grade", help="Delete a grade")
    rm_grade.add_argument("grade_id")

    rm_sem = sub.add_parser("remove-semester", help="Delete a semester and its grades")
    rm_sem.add_argument("semester_id")

    sub.add_parser("list", help="List semesters and grades")

    summary = sub.add_parser("summary", help="Markdown QPI report")
    summary.add_argument("--out", type=Path, default=None, help="Write the report to a file")

    export = sub.add_parser("export", help="Export grades to CSV")
    export.add_argument("--reimport", action="store_true", help="Only the columns needed to import again")
    export.add_argument("--with-summary", action="store_true", help="Append the academic summary block")
    export.add_argument("--filename", default=None)

    imp = sub.add_parser("import", help="Import grades from CSV")
    imp.add_argument("file", type=Path)
    imp.add_argument("--semester-id", default=None, help="Put every row into this semester")

    backup = sub.add_parser("backup", help="Dump all stored data as JSON")
    backup.add_argument("--out", type=Path, default=None)

    restore = sub.add_parser("restore", help="Load a JSON backup")
    restore.add_argument("file", type=Path)

    reset = sub.add_parser("reset", help="Delete every grade, semester and the academic record")
    reset.add_argument("--yes", action="store_true", help="Confirm")

    return parser


def _print_listing(store: GradeStore) -> None:
    if not store.semesters:
        print("No semesters yet.")
    for semester in store.semesters:
        qpi = f"{semester.semester_qpi:.2f}" if semester.semester_qpi is not None else "N/A"
        print(
            f"[{semester.id}] Y{semester.year_level} {semester.semester_type.value} "
            f"{semester.academic_year}  units={semester.total_units:g}  QPI={qpi}"
        )
        for g in store.get_grades_by_semester(semester.id):
            score = f"{g.numerical_grade:g}" if g.numerical_grade is not None else "-"
            print(f"    [{g.id}] {g.course_code:<10} {g.units:g}u  {score:>5}  {g.letter_grade or '-'}")

    cumulative = store.get_cumulative_qpi()
    if cumulative:
        print(f"\nCumulative QPI: {cumulative.qpi:.2f} over {cumulative.total_units:g} units")


def run(args: argparse.Namespace, settings: Settings) -> int:
    logger.debug(f"Using storage {settings.storage_path}")
    store = GradeStore.from_settings(settings)
    if store.error:
        print(f"Could not load stored data: {store.error}", file=sys.stderr)
        return 1

    if args.command == "init":
        record = store.initialize_academic_record(
            {
                "total_years": args.years or settings.default_total_years,
                "includes_summer": args.summer or settings.default_includes_summer,
            },
            attach_existing=args.attach_existing,
        )
        print(f"Academic record initialized ({record.configuration.total_years} years).")

    elif args.command == "add-semester":
        semester = store.add_semester(
            {
                "year_level": args.year_level,
                "semester_type": args.semester_type,
                "academic_year": args.academic_year,
                "is_completed": args.completed,
            }
        )
        print(semester.id)

    elif args.command == "add-grade":
        grade = store.add_grade(
            {
                "course_id": args.course_id or args.code,
                "course_code": args.code,
                "course_title": args.title,
                "units": args.units,
                "numerical_grade": args.grade,
                "notes": args.notes,
                "semester_id": args.semester_id,
            }
        )
        print(f"{grade.id} {grade.letter_grade or '-'}")

    elif args.command == "update-grade":
        changes = {
            name: value
            for name, value in (
                ("numerical_grade", args.grade),
                ("units", args.units),
                ("course_title", args.title),
                ("notes", args.notes),
            )
            if value is not None
        }
        if store.update_grade(args.grade_id, **changes) is None:
            print(f"Grade not found: {args.grade_id}", file=sys.stderr)
            return 1

    elif args.command == "remove-grade":
        if not store.remove_grade(args.grade_id):
            print(f"Grade not found: {args.grade_id}", file=sys.stderr)
            return 1

    elif args.command == "remove-semester":
        if not store.remove_semester(args.semester_id):
            print(f"Semester not found: {args.semester_id}", file=sys.stderr)
            return 1

    elif args.command == "list":
        _print_listing(store)

    elif args.command == "summary":
        report = SummaryReportGenerator.format_full_report(store.semesters, store.grades, store.academic_record)
        if args.out:
            args.out.write_text(report, encoding="utf-8")
            print(f"Report written: {args.out}")
        else:
            print(report)

    elif args.command == "export":
        if store.academic_record is not None:
            content = export_academic_record_to_csv(
                store.academic_record,
                store.semesters,
                store.grades,
                include_summary=args.with_summary,
                for_reimport=args.reimport,
            )
        else:
            content = export_grades_to_csv(store.grades, store.semesters, for_reimport=args.reimport)
        out_path = ExportWriter(settings.export_dir).write(content, args.filename)
        print(out_path)

    elif args.command == "import":
        text = args.file.read_text(encoding="utf-8-sig")
        try:
            added = import_csv_into_store(store, text, semester_id=args.semester_id)
        except CSVImportError as e:
            print(f"Import failed: {e}", file=sys.stderr)
            for err in e.errors:
                print(f"  - {err}", file=sys.stderr)
            return 1
        print(f"Imported {len(added)} grades.")

    elif args.command == "backup":
        data = store.storage.export_all()
        if args.out:
            args.out.write_text(data, encoding="utf-8")
            print(f"Backup written: {args.out}")
        else:
            print(data)

    elif args.command == "restore":
        store.storage.import_all(args.file.read_text(encoding="utf-8"))
        store.load_data()
        print(f"Restored {len(store.grades)} grades, {len(store.semesters)} semesters.")

    elif args.command == "reset":
        if not args.yes:
            print("Refusing to reset without --yes.", file=sys.stderr)
            return 1
        store.reset_all()
        print("All data cleared.")

    if store.error:
        print(f"Warning: changes were not saved ({store.error})", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.storage:
        settings = settings.with_storage(args.storage)

    try:
        return run(args, settings)
    except QPITrackerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
