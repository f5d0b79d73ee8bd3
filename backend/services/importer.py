"""
Bulk import of categories and tests from a spreadsheet.

Each row names one test and, redundantly, its category. Rows are committed one
at a time: a failure on a later row never rolls back earlier rows, and is
reported in the returned ``ImportReport`` instead.
"""
import io
import logging
from pathlib import Path

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.errors import ConflictError, LabDeskError, ValidationError
from backend.schemas.imports import FailedRow, ImportReport
from backend.services.events import ChangeFeed
from backend.services.taxonomy import create_category, create_test, get_category_by_name

logger = logging.getLogger(__name__)

CATEGORY_NAME = "Category Name"
CATEGORY_DESCRIPTION = "Category Description"
TEST_NAME = "Test Name"
TEST_CODE = "Test Code"
TEST_DESCRIPTION = "Test Description"
COLUMNS = [CATEGORY_NAME, CATEGORY_DESCRIPTION, TEST_NAME, TEST_CODE, TEST_DESCRIPTION]
REQUIRED_COLUMNS = [CATEGORY_NAME, TEST_NAME]

TEMPLATE_ROWS = [
    {
        CATEGORY_NAME: "Chemistry",
        CATEGORY_DESCRIPTION: "Clinical chemistry tests",
        TEST_NAME: "Glucose",
        TEST_CODE: "GLU",
        TEST_DESCRIPTION: "Fasting blood glucose",
    },
    {
        CATEGORY_NAME: "Chemistry",
        CATEGORY_DESCRIPTION: "Clinical chemistry tests",
        TEST_NAME: "Creatinine",
        TEST_CODE: "CREA",
        TEST_DESCRIPTION: "Serum creatinine",
    },
    {
        CATEGORY_NAME: "Hematology",
        CATEGORY_DESCRIPTION: "Blood cell counts",
        TEST_NAME: "Complete Blood Count",
        TEST_CODE: "CBC",
        TEST_DESCRIPTION: "Full blood count with differential",
    },
]

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SUPPORTED_SUFFIXES = (".xlsx", ".csv")


def read_document(content: bytes, file_name: str) -> pd.DataFrame:
    suffix = Path(file_name).suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValidationError("Please upload an .xlsx or .csv file", details={"file_name": file_name})
    try:
        if suffix == ".csv":
            frame = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=False, skip_blank_lines=False)
        else:
            frame = pd.read_excel(io.BytesIO(content), dtype=str)
    except Exception as exc:
        logger.warning("Could not read import document %s: %s", file_name, exc)
        raise ValidationError("The file could not be read as a spreadsheet") from exc

    frame.columns = [str(column).strip() for column in frame.columns]
    missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
    if missing:
        raise ValidationError(
            f"Missing required column(s): {', '.join(missing)}",
            details={"expected": COLUMNS},
        )
    for column in COLUMNS:
        if column not in frame.columns:
            frame[column] = ""
    return frame[COLUMNS].fillna("")


def _cell(row: pd.Series, column: str) -> str:
    return str(row[column]).strip()


def import_rows(db: Session, frame: pd.DataFrame, feed: ChangeFeed | None = None) -> ImportReport:
    report = ImportReport(rows_total=len(frame))
    category_ids: dict[str, str] = {}

    for position, (_, row) in enumerate(frame.iterrows()):
        # Header is row 1 in the spreadsheet.
        row_number = position + 2
        category_name = _cell(row, CATEGORY_NAME)
        test_name = _cell(row, TEST_NAME)
        if not category_name or not test_name:
            report.skipped_rows.append(row_number)
            continue

        try:
            category_id = category_ids.get(category_name)
            if category_id is None:
                try:
                    category = create_category(
                        db,
                        category_name,
                        _cell(row, CATEGORY_DESCRIPTION) or None,
                    )
                    report.categories_created += 1
                except ConflictError:
                    category = get_category_by_name(db, category_name)
                    if category is None:
                        raise
                    report.categories_reused += 1
                category_id = category.id
                category_ids[category_name] = category_id

            create_test(
                db,
                test_name,
                category_id,
                code=_cell(row, TEST_CODE) or None,
                description=_cell(row, TEST_DESCRIPTION) or None,
            )
            report.tests_created += 1
        except LabDeskError as exc:
            logger.warning("Import row %d failed: %s", row_number, exc.message)
            report.failed_rows.append(FailedRow(row=row_number, error=exc.message))
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Import row %d failed on database access: %s", row_number, exc)
            report.failed_rows.append(FailedRow(row=row_number, error="The database could not be reached for this row"))

    logger.info(
        "Import finished: %d rows, %d categories created, %d reused, %d tests, %d skipped, %d failed",
        report.rows_total,
        report.categories_created,
        report.categories_reused,
        report.tests_created,
        len(report.skipped_rows),
        len(report.failed_rows),
    )
    if feed is not None:
        if report.categories_created:
            feed.publish("categories")
        if report.tests_created:
            feed.publish("tests")
    return report


def import_document(db: Session, content: bytes, file_name: str, feed: ChangeFeed | None = None) -> ImportReport:
    return import_rows(db, read_document(content, file_name), feed=feed)


def download_template(file_format: str = "xlsx") -> tuple[bytes, str, str]:
    """Return (content, file name, media type) for the import template."""
    frame = pd.DataFrame(TEMPLATE_ROWS, columns=COLUMNS)
    if file_format == "csv":
        return frame.to_csv(index=False).encode("utf-8"), "lab-tests-template.csv", "text/csv"
    if file_format != "xlsx":
        raise ValidationError("Template format must be xlsx or csv", details={"field": "format"})

    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        frame.to_excel(writer, index=False, sheet_name="Tests")
    return buf.getvalue(), "lab-tests-template.xlsx", XLSX_MIME
