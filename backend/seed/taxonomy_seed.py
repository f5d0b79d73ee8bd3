import logging

from backend.database import SessionLocal
from backend.models.taxonomy import Category, LabTest

logger = logging.getLogger(__name__)


DEMO_TAXONOMY = [
    {
        "name": "Chemistry",
        "description": "Clinical chemistry panel",
        "tests": [
            {"name": "Glucose", "code": "GLU", "description": "Fasting blood glucose"},
            {"name": "Creatinine", "code": "CREA", "description": "Serum creatinine"},
            {"name": "Blood Urea Nitrogen", "code": "BUN"},
            {"name": "HbA1c", "code": "A1C", "description": "Glycated hemoglobin"},
        ],
    },
    {
        "name": "Hematology",
        "description": "Blood cell counts and indices",
        "tests": [
            {"name": "Complete Blood Count", "code": "CBC"},
            {"name": "Hemoglobin", "code": "HGB"},
            {"name": "Platelets", "code": "PLT"},
            {"name": "ESR", "code": "ESR", "description": "Erythrocyte sedimentation rate"},
        ],
    },
    {
        "name": "Lipid Panel",
        "description": None,
        "tests": [
            {"name": "Total Cholesterol", "code": "CHOL"},
            {"name": "HDL Cholesterol", "code": "HDL"},
            {"name": "LDL Cholesterol", "code": "LDL"},
            {"name": "Triglycerides", "code": "TG"},
        ],
    },
    {
        "name": "Liver Function",
        "description": "Hepatic enzymes and bilirubin",
        "tests": [
            {"name": "ALT", "code": "SGPT"},
            {"name": "AST", "code": "SGOT"},
            {"name": "Total Bilirubin", "code": "TBIL"},
        ],
    },
    {
        "name": "Thyroid",
        "description": None,
        "tests": [
            {"name": "TSH", "code": "TSH", "description": "Thyroid stimulating hormone"},
            {"name": "Free T4", "code": "FT4"},
        ],
    },
]


def seed_taxonomy() -> int:
    """Insert the demo categories and tests when the catalog is empty.

    Returns the number of categories created.
    """
    db = SessionLocal()
    try:
        if db.query(Category.id).first():
            return 0
        for item in DEMO_TAXONOMY:
            category = Category(name=item["name"], description=item["description"])
            db.add(category)
            db.flush()
            for test in item["tests"]:
                db.add(
                    LabTest(
                        name=test["name"],
                        category_id=category.id,
                        code=test.get("code"),
                        description=test.get("description"),
                    )
                )
        db.commit()
        logger.info("Seeded %d demo categories", len(DEMO_TAXONOMY))
        return len(DEMO_TAXONOMY)
    finally:
        db.close()
