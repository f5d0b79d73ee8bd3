import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent.parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import pandas as pd
import streamlit as st

from utils.api_client import ApiClient, cached_categories, cached_tests
from utils.theme import apply_theme, error_message, get_colors, kpi_tile, render_sidebar, section_title

st.set_page_config(page_title="Catalog", page_icon="📚", layout="wide")
apply_theme()
render_sidebar()
COLORS = get_colors()

client = ApiClient()
versions = client.changes()

st.markdown(
    f"""
    <div style="margin-bottom:4px;">
        <span style="font-size:1.6rem;font-weight:800;color:{COLORS['text']};">📚 Test Catalog</span>
    </div>
    <p style="color:{COLORS['text_muted']};margin-top:0;">
        Manage test categories and the tests inside them.
    </p>
    """,
    unsafe_allow_html=True,
)

c_ok, categories = cached_categories(versions.get("categories", 0))
t_ok, tests = cached_tests(versions.get("tests", 0))
if not (c_ok and t_ok):
    st.error("Failed to load the catalog.")
    st.stop()

tab_categories, tab_tests, tab_import = st.tabs(["Categories", "Tests", "Import"])

# ── Categories ────────────────────────────────────────────────────────────
with tab_categories:
    with st.form("add_category", clear_on_submit=True):
        name = st.text_input("Category name")
        description = st.text_input("Description")
        add = st.form_submit_button("Add category", type="primary")
    if add:
        res = client.create_category(name, description or None)
        if res.ok:
            st.rerun()
        else:
            st.error(f"Could not add category: {error_message(res)}")

    section_title("Categories")
    if not categories:
        st.info("No categories yet.")
    for cat in categories:
        with st.expander(cat["name"]):
            with st.form(f"cat_{cat['id']}"):
                new_name = st.text_input("Name", value=cat["name"])
                new_desc = st.text_input("Description", value=cat.get("description") or "")
                b1, b2 = st.columns([1, 5])
                save = b1.form_submit_button("Save", type="primary")
                delete = b2.form_submit_button("Delete")
            if save:
                res = client.update_category(cat["id"], new_name, new_desc or None)
                if res.ok:
                    st.rerun()
                else:
                    st.error(f"Update failed: {error_message(res)}")
            if delete:
                res = client.delete_category(cat["id"])
                if res.ok:
                    st.rerun()
                else:
                    st.error(f"Delete failed: {error_message(res)}")

# ── Tests ─────────────────────────────────────────────────────────────────
with tab_tests:
    by_name = {c["name"]: c["id"] for c in categories}
    if not by_name:
        st.info("Add a category before adding tests.")
    else:
        with st.form("add_test", clear_on_submit=True):
            c1, c2 = st.columns(2)
            test_name = c1.text_input("Test name")
            test_code = c2.text_input("Test code")
            test_category = c1.selectbox("Category", list(by_name))
            test_desc = c2.text_input("Description")
            add_test = st.form_submit_button("Add test", type="primary")
        if add_test:
            res = client.create_test(test_name, by_name[test_category], test_code or None, test_desc or None)
            if res.ok:
                st.rerun()
            else:
                st.error(f"Could not add test: {error_message(res)}")

    section_title("All Tests")
    if not tests:
        st.info("No tests yet.")
    else:
        df = pd.DataFrame(tests)
        df["category_name"] = df["category_name"].fillna("Uncategorized")
        view = df[["name", "code", "category_name", "description"]]
        view.columns = ["Name", "Code", "Category", "Description"]
        st.dataframe(view, use_container_width=True, hide_index=True)

        options = {f"{t['name']} · {t.get('category_name') or 'Uncategorized'}": t for t in tests}
        test = options[st.selectbox("Edit test", list(options))]
        with st.form("edit_test"):
            c1, c2 = st.columns(2)
            e_name = c1.text_input("Name", value=test["name"])
            e_code = c2.text_input("Code", value=test.get("code") or "")
            cat_names = list(by_name)
            current = test.get("category_name")
            e_cat = c1.selectbox(
                "Category", cat_names, index=cat_names.index(current) if current in cat_names else 0
            )
            e_desc = c2.text_input("Description", value=test.get("description") or "")
            b1, b2 = st.columns([1, 5])
            save = b1.form_submit_button("Save", type="primary")
            delete = b2.form_submit_button("Delete")
        if save:
            res = client.update_test(
                test["id"], name=e_name, code=e_code, category_id=by_name.get(e_cat), description=e_desc
            )
            if res.ok:
                st.rerun()
            else:
                st.error(f"Update failed: {error_message(res)}")
        if delete:
            res = client.delete_test(test["id"])
            if res.ok:
                st.rerun()
            else:
                st.error(f"Delete failed: {error_message(res)}")

# ── Import ────────────────────────────────────────────────────────────────
with tab_import:
    st.markdown(
        f"""
        <p style="color:{COLORS['text_muted']};">
            Upload a spreadsheet with the columns <b>Category Name</b>, <b>Category Description</b>,
            <b>Test Name</b>, <b>Test Code</b> and <b>Test Description</b>. Existing categories are reused.
        </p>
        """,
        unsafe_allow_html=True,
    )
    tpl = client.template("xlsx")
    if tpl.ok:
        st.download_button(
            "⬇️ Download template",
            data=tpl.content,
            file_name="lab-tests-template.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )

    file = st.file_uploader("Spreadsheet", type=["xlsx", "csv"])
    if st.button("Import", disabled=file is None, type="primary") and file:
        with st.spinner("Importing..."):
            res = client.import_tests(file.name, file.getvalue())
        if not res.ok:
            st.error(f"Import failed: {error_message(res)}")
        else:
            report = res.json()["data"]
            st.success(res.json().get("message", "Import finished"))
            k1, k2, k3, k4 = st.columns(4)
            k1.markdown(kpi_tile("Rows", report["rows_total"], COLORS["text"]), unsafe_allow_html=True)
            k2.markdown(kpi_tile("Tests created", report["tests_created"], COLORS["secondary"]), unsafe_allow_html=True)
            k3.markdown(kpi_tile("New categories", report["categories_created"], COLORS["primary"]), unsafe_allow_html=True)
            failed = report["failed_rows"]
            k4.markdown(
                kpi_tile("Failed rows", len(failed), COLORS["danger"] if failed else COLORS["secondary"]),
                unsafe_allow_html=True,
            )
            if report["skipped_rows"]:
                st.caption("Skipped rows (missing category or test name): " + ", ".join(map(str, report["skipped_rows"])))
            if failed:
                st.dataframe(pd.DataFrame(failed), use_container_width=True, hide_index=True)
