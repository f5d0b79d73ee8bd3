import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent.parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import html
import re

import streamlit as st

from utils.api_client import ApiClient, cached_categories, cached_tests
from utils.theme import apply_theme, error_message, get_colors, kpi_tile, render_sidebar, require_patient, section_title

st.set_page_config(page_title="Test Selection", page_icon="✅", layout="wide")
apply_theme()
render_sidebar()
COLORS = get_colors()

patient = require_patient()
client = ApiClient()
versions = client.changes()

st.markdown(
    f"""
    <div style="margin-bottom:4px;">
        <span style="font-size:1.6rem;font-weight:800;color:{COLORS['text']};">✅ Test Selection</span>
    </div>
    <p style="color:{COLORS['text_muted']};margin-top:0;">
        Choosing tests for <b>{html.escape(patient['name'])}</b> ({html.escape(patient['patient_id'])}).
    </p>
    """,
    unsafe_allow_html=True,
)

res = client.workset(patient["id"])
if not res.ok:
    st.error(f"Failed to load the current selection: {error_message(res)}")
    st.stop()
selected = res.json()["data"]["tests"]
selected_ids = {t["id"] for t in selected}

left, right = st.columns([3, 2])

# ── Catalog browser ───────────────────────────────────────────────────────
with left:
    section_title("Catalog")
    c_ok, categories = cached_categories(versions.get("categories", 0))
    if not c_ok:
        st.error("Failed to load categories.")
        st.stop()
    if not categories:
        st.info("The catalog is empty. Add categories and tests on the **Catalog** page.")
        st.stop()

    by_name = {c["name"]: c for c in categories}
    category = by_name[st.selectbox("Category", list(by_name))]
    if category.get("description"):
        st.caption(category["description"])

    t_ok, tests = cached_tests(versions.get("tests", 0), category["id"])
    if not t_ok:
        st.error("Failed to load tests.")
    elif not tests:
        st.info("No tests in this category yet.")
    else:
        for test in tests:
            c1, c2 = st.columns([5, 1])
            code = f' <span class="test-code">{html.escape(test["code"])}</span>' if test.get("code") else ""
            desc = f'<div class="muted">{html.escape(test["description"])}</div>' if test.get("description") else ""
            c1.markdown(f"**{html.escape(test['name'])}**{code}{desc}", unsafe_allow_html=True)
            already = test["id"] in selected_ids
            if c2.button("Added" if already else "Add", key=f"add_{test['id']}", disabled=already):
                r = client.add_to_workset(patient["id"], test["id"])
                if r.ok:
                    st.rerun()
                else:
                    st.error(f"Could not add test: {error_message(r)}")

# ── Current selection ─────────────────────────────────────────────────────
with right:
    section_title("Selected Tests")
    st.markdown(kpi_tile("Tests selected", len(selected), COLORS["primary"]), unsafe_allow_html=True)
    st.markdown("<div style='height:12px'></div>", unsafe_allow_html=True)

    if not selected:
        st.info("No tests selected yet.")
    for item in selected:
        c1, c2 = st.columns([5, 1])
        c1.markdown(
            f"**{html.escape(item['name'])}**  \n<span class='muted'>{html.escape(item['category'])}</span>",
            unsafe_allow_html=True,
        )
        if c2.button("✕", key=f"rm_{item['id']}", help="Remove"):
            r = client.remove_from_workset(patient["id"], item["id"])
            if r.ok:
                st.rerun()
            else:
                st.error(f"Could not remove test: {error_message(r)}")

    if selected:
        notes = st.text_area("Notes (optional)", key="selection_notes")
        b1, b2 = st.columns(2)
        if b1.button("💾 Save for patient", type="primary", use_container_width=True):
            r = client.save_workset(patient["id"], notes.strip() or None)
            if r.ok:
                st.toast(r.json().get("message", "Tests saved for patient"))
                st.rerun()
            else:
                st.error(f"Save failed: {error_message(r)}")
        if b2.button("Clear all", use_container_width=True):
            r = client.clear_workset(patient["id"])
            if r.ok:
                st.rerun()
            else:
                st.error(f"Could not clear selection: {error_message(r)}")

        export = client.export_workset(patient["id"])
        if export.ok:
            match = re.search(r'filename="([^"]+)"', export.headers.get("Content-Disposition", ""))
            st.download_button(
                "⬇️ Export as JSON",
                data=export.content,
                file_name=match.group(1) if match else "lab-tests.json",
                mime="application/json",
                use_container_width=True,
            )
