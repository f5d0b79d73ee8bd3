from backend.models.patient import Patient
from backend.models.selection import SelectionRecord
from backend.models.taxonomy import Category, LabTest

__all__ = [
    "Category",
    "LabTest",
    "Patient",
    "SelectionRecord",
]
