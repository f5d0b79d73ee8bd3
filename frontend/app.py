import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import streamlit as st
from utils.api_client import ApiClient, cached_categories, cached_patients, cached_tests
from utils.theme import apply_theme, get_colors, kpi_tile, render_sidebar

st.set_page_config(
    page_title="Lab Test Desk",
    page_icon="🧪",
    layout="wide",
    initial_sidebar_state="expanded",
)
apply_theme()
render_sidebar()
COLORS = get_colors()

if "patient" not in st.session_state:
    st.session_state.patient = None

client = ApiClient()
versions = client.changes()
if not versions:
    st.error("Cannot reach the Lab Test Desk API. Check that the backend is running.")
    st.stop()

st.markdown(
    f"""
    <div style="margin-bottom:8px;">
        <span style="font-size:1.8rem;font-weight:800;color:{COLORS['text']};">🧪 Lab Test Desk</span>
    </div>
    <p style="color:{COLORS['text_muted']};margin-top:0;">
        Register patients, pick lab tests from the catalog and keep a history of every order.
    </p>
    """,
    unsafe_allow_html=True,
)

c_ok, categories = cached_categories(versions.get("categories", 0))
t_ok, tests = cached_tests(versions.get("tests", 0))
p_ok, recent = cached_patients(versions.get("patients", 0), limit=100)

patient = st.session_state.patient
cols = st.columns(4)
tiles = [
    ("Categories", len(categories) if c_ok else "—", COLORS["primary"]),
    ("Lab Tests", len(tests) if t_ok else "—", COLORS["secondary"]),
    ("Recent Patients", len(recent) if p_ok else "—", COLORS["text"]),
    ("Current Patient", patient["patient_id"] if patient else "None", COLORS["warning"]),
]
for col, (label, value, color) in zip(cols, tiles):
    col.markdown(kpi_tile(label, value, color), unsafe_allow_html=True)

st.markdown("<div style='height:24px'></div>", unsafe_allow_html=True)

nav_items = [
    ("🪪", "Patients", "Look up a patient by ID, or add and edit records."),
    ("✅", "Test Selection", "Build the list of tests for the current patient and save it."),
    ("🗂️", "History", "Review past orders and update their status."),
    ("📚", "Catalog", "Manage categories and tests, or import them from a spreadsheet."),
]
nav_cols = st.columns(len(nav_items))
for col, (icon, title, desc) in zip(nav_cols, nav_items):
    col.markdown(
        f"""
        <div class="nav-card">
            <div class="nav-icon">{icon}</div>
            <div class="nav-title">{title}</div>
            <div class="nav-desc">{desc}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )
