import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent.parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import html

import pandas as pd
import streamlit as st

from utils.api_client import ApiClient, cached_patients
from utils.theme import apply_theme, error_message, get_colors, pill_tag, render_sidebar, section_title

st.set_page_config(page_title="Patients", page_icon="🪪", layout="wide")
apply_theme()
render_sidebar()
COLORS = get_colors()

client = ApiClient()
versions = client.changes()


def _select(patient: dict) -> None:
    st.session_state.patient = patient
    st.rerun()


def _field(label: str, value) -> str:
    return (
        f'<div><div class="info-label">{label}</div>'
        f'<div class="info-value">{html.escape(str(value or "—"))}</div></div>'
    )


# ── Header ────────────────────────────────────────────────────────────────
st.markdown(
    f"""
    <div style="margin-bottom:4px;">
        <span style="font-size:1.6rem;font-weight:800;color:{COLORS['text']};">🪪 Patients</span>
    </div>
    <p style="color:{COLORS['text_muted']};margin-top:0;">
        Enter a patient ID to load the record. Unknown IDs are fetched from the identity service and saved.
    </p>
    """,
    unsafe_allow_html=True,
)

# ── Lookup ────────────────────────────────────────────────────────────────
with st.form("lookup_form"):
    lookup_id = st.text_input("Patient ID", placeholder="e.g. A123456")
    submitted = st.form_submit_button("Look up", type="primary")
if submitted:
    if not lookup_id.strip():
        st.error("Please enter a patient ID.")
    else:
        with st.spinner("Looking up patient..."):
            res = client.lookup_patient(lookup_id.strip())
        if res.ok:
            body = res.json()
            st.toast(body.get("message", "Patient found"))
            _select(body["data"]["patient"])
        else:
            st.error(f"Lookup failed: {error_message(res)}")

# ── Current patient ───────────────────────────────────────────────────────
patient = st.session_state.get("patient")
if patient:
    section_title("Current Patient")
    st.markdown(
        f"""
        <div class="card patient-card">
            <div class="patient-name">{html.escape(patient['name'])}</div>
            <div style="display:grid;grid-template-columns:repeat(5,1fr);gap:12px;margin-top:10px;">
                {_field("Patient ID", patient.get("patient_id"))}
                {_field("Date of birth", patient.get("date_of_birth"))}
                {_field("Gender", patient.get("gender"))}
                {_field("Phone", patient.get("phone"))}
                {_field("Address", patient.get("address"))}
            </div>
        </div>
        """,
        unsafe_allow_html=True,
    )
    external = patient.get("external_record") or {}
    if external:
        st.markdown(" ".join(pill_tag(f"{k}: {v}") for k, v in external.items()), unsafe_allow_html=True)

    with st.expander("✏️ Edit patient"):
        with st.form("edit_patient"):
            name = st.text_input("Name", value=patient["name"])
            dob = st.text_input("Date of birth (YYYY-MM-DD)", value=patient.get("date_of_birth") or "")
            gender = st.text_input("Gender", value=patient.get("gender") or "")
            phone = st.text_input("Phone", value=patient.get("phone") or "")
            address = st.text_area("Address", value=patient.get("address") or "")
            save = st.form_submit_button("Save changes", type="primary")
        if save:
            res = client.update_patient(
                patient["id"], name=name, date_of_birth=dob or None, gender=gender, phone=phone, address=address
            )
            if res.ok:
                st.toast("Patient updated")
                _select(res.json()["data"])
            else:
                st.error(f"Update failed: {error_message(res)}")

    with st.expander("🗑️ Delete patient"):
        st.caption("Saved test selections for this patient are kept.")
        if st.button("Delete this patient", type="secondary"):
            res = client.delete_patient(patient["id"])
            if res.ok:
                st.session_state.patient = None
                st.rerun()
            else:
                st.error(f"Delete failed: {error_message(res)}")

# ── Add manually ──────────────────────────────────────────────────────────
with st.expander("➕ Add patient manually"):
    with st.form("add_patient", clear_on_submit=True):
        c1, c2 = st.columns(2)
        new_id = c1.text_input("Patient ID")
        new_name = c2.text_input("Name")
        new_dob = c1.text_input("Date of birth (YYYY-MM-DD)")
        new_gender = c2.selectbox("Gender", ["", "Male", "Female", "Other"])
        new_phone = c1.text_input("Phone")
        new_address = c2.text_input("Address")
        add = st.form_submit_button("Add patient", type="primary")
    if add:
        res = client.create_patient(
            patient_id=new_id,
            name=new_name,
            date_of_birth=new_dob or None,
            gender=new_gender or None,
            phone=new_phone or None,
            address=new_address or None,
        )
        if res.ok:
            _select(res.json()["data"])
        else:
            st.error(f"Could not add patient: {error_message(res)}")

# ── Search / recent ───────────────────────────────────────────────────────
section_title("Find a Patient")
query = st.text_input("🔍 Search by ID or name", placeholder="Type a patient ID or name…", key="patient_search")
ok, rows = cached_patients(versions.get("patients", 0), query.strip() or None)
if not ok:
    st.error("Failed to load patients.")
elif not rows:
    st.info("No matching patients." if query.strip() else "No patients yet. Look one up above.")
else:
    df = pd.DataFrame(rows)[["patient_id", "name", "date_of_birth", "gender", "phone", "updated_at"]]
    df.columns = ["Patient ID", "Name", "Date of birth", "Gender", "Phone", "Last updated"]
    st.dataframe(df, use_container_width=True, hide_index=True)

    options = {f"{r['patient_id']} · {r['name']}": r for r in rows}
    choice = st.selectbox("Select patient", list(options))
    if st.button("Use this patient", type="primary"):
        _select(options[choice])
