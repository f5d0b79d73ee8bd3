from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routers.deps import envelope
from backend.schemas.taxonomy import LabTestCreate, LabTestOut, LabTestUpdate
from backend.services import taxonomy
from backend.services.events import ChangeFeed, get_change_feed

router = APIRouter(prefix="/api/tests", tags=["tests"])


@router.get("")
def list_tests(category_id: str | None = Query(default=None), db: Session = Depends(get_db)):
    if category_id:
        rows = taxonomy.list_tests_by_category(db, category_id)
    else:
        rows = taxonomy.list_tests(db)
    names = taxonomy.category_names(db)
    return envelope(
        [
            {**LabTestOut.model_validate(row).model_dump(), "category_name": names.get(row.category_id)}
            for row in rows
        ]
    )


@router.post("")
def create_test(
    payload: LabTestCreate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    test = taxonomy.create_test(db, payload.name, payload.category_id, payload.code, payload.description, feed=feed)
    return envelope(LabTestOut.model_validate(test), "Test added successfully")


@router.patch("/{test_id}")
def update_test(
    test_id: str,
    payload: LabTestUpdate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    test = taxonomy.update_test(db, test_id, payload.model_dump(exclude_unset=True), feed=feed)
    return envelope(LabTestOut.model_validate(test), "Test updated successfully")


@router.delete("/{test_id}")
def delete_test(
    test_id: str,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    taxonomy.delete_test(db, test_id, feed=feed)
    return envelope(None, "Test deleted successfully")
