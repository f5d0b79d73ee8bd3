from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routers.deps import envelope
from backend.schemas.selection import SelectionUpdate
from backend.services import history
from backend.services.events import ChangeFeed, get_change_feed

router = APIRouter(prefix="/api/selections", tags=["selections"])


@router.get("")
def list_history(patient_id: str, db: Session = Depends(get_db)):
    rows = history.list_history(db, patient_id)
    return envelope(
        {
            "selections": [history.to_out(row) for row in rows],
            "status_counts": history.status_counts(db, patient_id),
        }
    )


@router.get("/{selection_id}")
def get_selection(selection_id: str, db: Session = Depends(get_db)):
    return envelope(history.to_out(history.get_selection(db, selection_id)))


@router.patch("/{selection_id}")
def update_selection(
    selection_id: str,
    payload: SelectionUpdate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    record = history.update_selection(db, selection_id, status=payload.status, notes=payload.notes, feed=feed)
    return envelope(history.to_out(record), "Selection updated")


@router.delete("/{selection_id}")
def delete_selection(
    selection_id: str,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    history.delete_selection(db, selection_id, feed=feed)
    return envelope(None, "Selection deleted")
