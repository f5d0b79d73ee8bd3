from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from backend.config import settings
from backend.database import get_db
from backend.errors import ValidationError
from backend.routers.deps import envelope
from backend.services.events import ChangeFeed, get_change_feed
from backend.services.importer import download_template, import_document

router = APIRouter(prefix="/api/imports", tags=["imports"])


@router.post("/tests")
async def import_tests(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    if not file.filename:
        raise ValidationError("Please upload an .xlsx or .csv file")

    content = await file.read()
    max_size_bytes = settings.max_upload_size_mb * 1024 * 1024
    if len(content) > max_size_bytes:
        raise ValidationError(f"File too large. Max size is {settings.max_upload_size_mb}MB")

    report = import_document(db, content, file.filename, feed=feed)
    return envelope(report, f"Imported {report.tests_created} test(s)")


@router.get("/template")
def template(file_format: str = Query(default="xlsx", alias="format")):
    content, file_name, media_type = download_template(file_format)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )
