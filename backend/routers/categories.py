from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routers.deps import envelope
from backend.schemas.taxonomy import CategoryCreate, CategoryOut, CategoryUpdate, LabTestOut
from backend.services import taxonomy
from backend.services.events import ChangeFeed, get_change_feed

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("")
def list_categories(db: Session = Depends(get_db)):
    rows = taxonomy.list_categories(db)
    return envelope([CategoryOut.model_validate(row) for row in rows])


@router.post("")
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    category = taxonomy.create_category(db, payload.name, payload.description, feed=feed)
    return envelope(CategoryOut.model_validate(category), "Category added successfully")


@router.put("/{category_id}")
def update_category(
    category_id: str,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    category = taxonomy.update_category(db, category_id, payload.name, payload.description, feed=feed)
    return envelope(CategoryOut.model_validate(category), "Category updated successfully")


@router.delete("/{category_id}")
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    taxonomy.delete_category(db, category_id, feed=feed)
    return envelope(None, "Category deleted successfully")


@router.get("/{category_id}/tests")
def list_category_tests(category_id: str, db: Session = Depends(get_db)):
    taxonomy.get_category(db, category_id)
    rows = taxonomy.list_tests_by_category(db, category_id)
    return envelope([LabTestOut.model_validate(row) for row in rows])
