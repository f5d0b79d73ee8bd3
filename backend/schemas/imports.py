from pydantic import BaseModel


class FailedRow(BaseModel):
    row: int
    error: str


class ImportReport(BaseModel):
    rows_total: int = 0
    categories_created: int = 0
    categories_reused: int = 0
    tests_created: int = 0
    skipped_rows: list[int] = []
    failed_rows: list[FailedRow] = []
