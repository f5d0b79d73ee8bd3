import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.config import settings
from backend.database import commit_or_raise
from backend.errors import ConflictError, NotFoundError, ValidationError
from backend.models.taxonomy import Category, LabTest
from backend.services.events import ChangeFeed
from backend.services.fields import clean_text, require_text

logger = logging.getLogger(__name__)

DELETE_POLICIES = ("orphan", "restrict")
_TEST_FIELDS = ("name", "category_id", "code", "description")


def _notify(feed: ChangeFeed | None, *topics: str) -> None:
    if feed is None:
        return
    for topic in topics:
        feed.publish(topic)


def get_category(db: Session, category_id: str) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFoundError("Category not found", details={"id": category_id})
    return category


def get_category_by_name(db: Session, name: str) -> Category | None:
    return db.query(Category).filter(Category.name == name).first()


def list_categories(db: Session) -> list[Category]:
    return db.query(Category).order_by(Category.name.asc()).all()


def _ensure_name_free(db: Session, name: str, exclude_id: str | None = None) -> None:
    query = db.query(Category.id).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError(f"Category '{name}' already exists", details={"name": name})


def create_category(
    db: Session,
    name: str | None,
    description: str | None = None,
    feed: ChangeFeed | None = None,
) -> Category:
    cleaned_name = require_text(name, "name", "Category name")
    _ensure_name_free(db, cleaned_name)

    category = Category(name=cleaned_name, description=clean_text(description))
    db.add(category)
    commit_or_raise(db, f"Category '{cleaned_name}' already exists")
    db.refresh(category)
    logger.info("Created category %s (%s)", category.name, category.id)
    _notify(feed, "categories")
    return category


def update_category(
    db: Session,
    category_id: str,
    name: str | None,
    description: str | None = None,
    feed: ChangeFeed | None = None,
) -> Category:
    cleaned_name = require_text(name, "name", "Category name")
    category = get_category(db, category_id)
    _ensure_name_free(db, cleaned_name, exclude_id=category.id)

    category.name = cleaned_name
    category.description = clean_text(description)
    commit_or_raise(db, f"Category '{cleaned_name}' already exists")
    db.refresh(category)
    _notify(feed, "categories", "tests")
    return category


def delete_category(
    db: Session,
    category_id: str,
    policy: str | None = None,
    feed: ChangeFeed | None = None,
) -> None:
    """Delete a category.

    With the ``orphan`` policy the delete is unconditional and the category's
    tests keep their now-dangling ``category_id``. With ``restrict`` the
    delete is refused while any test still references the category.
    """
    policy = policy or settings.category_delete_policy
    if policy not in DELETE_POLICIES:
        raise ValueError(f"Unknown category delete policy: {policy}")

    category = get_category(db, category_id)
    dependents = db.query(func.count(LabTest.id)).filter(LabTest.category_id == category.id).scalar() or 0
    if dependents and policy == "restrict":
        raise ConflictError(
            f"Category '{category.name}' still has {dependents} test(s)",
            details={"id": category.id, "tests": dependents},
        )

    db.delete(category)
    commit_or_raise(db)
    if dependents:
        logger.warning("Deleted category %s leaving %d orphaned test(s)", category_id, dependents)
    else:
        logger.info("Deleted category %s", category_id)
    _notify(feed, "categories", "tests")


def get_test(db: Session, test_id: str) -> LabTest:
    test = db.query(LabTest).filter(LabTest.id == test_id).first()
    if not test:
        raise NotFoundError("Test not found", details={"id": test_id})
    return test


def list_tests(db: Session) -> list[LabTest]:
    return db.query(LabTest).order_by(LabTest.name.asc()).all()


def list_tests_by_category(db: Session, category_id: str) -> list[LabTest]:
    return (
        db.query(LabTest)
        .filter(LabTest.category_id == category_id)
        .order_by(LabTest.name.asc())
        .all()
    )


def _require_category(db: Session, category_id: str | None) -> str:
    cleaned = require_text(category_id, "category_id", "Category")
    if not db.query(Category.id).filter(Category.id == cleaned).first():
        raise ValidationError("Category must reference an existing category", details={"field": "category_id"})
    return cleaned


def create_test(
    db: Session,
    name: str | None,
    category_id: str | None,
    code: str | None = None,
    description: str | None = None,
    feed: ChangeFeed | None = None,
) -> LabTest:
    cleaned_name = require_text(name, "name", "Test name")
    cleaned_category = _require_category(db, category_id)

    test = LabTest(
        name=cleaned_name,
        category_id=cleaned_category,
        code=clean_text(code),
        description=clean_text(description),
    )
    db.add(test)
    commit_or_raise(db)
    db.refresh(test)
    logger.info("Created test %s in category %s", test.name, test.category_id)
    _notify(feed, "tests")
    return test


def update_test(db: Session, test_id: str, fields: dict[str, Any], feed: ChangeFeed | None = None) -> LabTest:
    unknown = set(fields) - set(_TEST_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown test fields: {', '.join(sorted(unknown))}")

    changes: dict[str, Any] = {}
    if "name" in fields:
        changes["name"] = require_text(fields["name"], "name", "Test name")
    if "category_id" in fields:
        changes["category_id"] = _require_category(db, fields["category_id"])
    for key in ("code", "description"):
        if key in fields:
            changes[key] = clean_text(fields[key])

    test = get_test(db, test_id)
    for key, value in changes.items():
        setattr(test, key, value)
    commit_or_raise(db)
    db.refresh(test)
    _notify(feed, "tests")
    return test


def delete_test(db: Session, test_id: str, feed: ChangeFeed | None = None) -> None:
    test = get_test(db, test_id)
    db.delete(test)
    commit_or_raise(db)
    logger.info("Deleted test %s", test_id)
    _notify(feed, "tests")


def category_names(db: Session) -> dict[str, str]:
    return {category.id: category.name for category in list_categories(db)}
