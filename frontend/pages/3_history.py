import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent.parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import html
from datetime import datetime

import plotly.graph_objects as go
import streamlit as st

from utils.api_client import ApiClient, cached_history
from utils.theme import (
    STATUS_COLORS,
    apply_theme,
    error_message,
    get_colors,
    pill_tag,
    plotly_layout_defaults,
    render_sidebar,
    require_patient,
    section_title,
    status_badge,
)

STATUSES = ["pending", "completed", "cancelled"]

st.set_page_config(page_title="History", page_icon="🗂️", layout="wide")
apply_theme()
render_sidebar()
COLORS = get_colors()

patient = require_patient()
client = ApiClient()
versions = client.changes()

st.markdown(
    f"""
    <div style="margin-bottom:4px;">
        <span style="font-size:1.6rem;font-weight:800;color:{COLORS['text']};">🗂️ Test History</span>
    </div>
    <p style="color:{COLORS['text_muted']};margin-top:0;">
        Saved selections for <b>{html.escape(patient['name'])}</b>, newest first.
    </p>
    """,
    unsafe_allow_html=True,
)

ok, data = cached_history(versions.get("selections", 0), patient["id"])
if not ok:
    st.error("Failed to load history.")
    st.stop()
selections = data.get("selections", [])
if not selections:
    st.info("No saved selections yet. Use **Test Selection** to create one.")
    st.stop()

# ── Status summary ────────────────────────────────────────────────────────
counts = data.get("status_counts", {})
fig = go.Figure(
    go.Pie(
        labels=[s.title() for s in STATUSES],
        values=[counts.get(s, 0) for s in STATUSES],
        hole=0.55,
        marker=dict(colors=[COLORS[STATUS_COLORS[s]] for s in STATUSES]),
        textinfo="label+value",
        textfont=dict(size=13),
    )
)
fig.update_layout(**plotly_layout_defaults("Selections by Status", height=280), showlegend=False)
st.plotly_chart(fig, use_container_width=True)

# ── Selections ────────────────────────────────────────────────────────────
section_title("Selections")
for sel in selections:
    created = datetime.fromisoformat(sel["created_at"]).strftime("%d %b %Y, %H:%M")
    with st.container(border=True):
        st.markdown(
            f"{status_badge(sel['status'])} &nbsp; <b>{created}</b> "
            f"<span class='muted'>· {len(sel['tests'])} test(s)</span>",
            unsafe_allow_html=True,
        )
        st.markdown(
            " ".join(pill_tag(f"{t['name']} ({t['category']})") for t in sel["tests"]),
            unsafe_allow_html=True,
        )
        with st.form(f"edit_{sel['id']}"):
            c1, c2 = st.columns([1, 3])
            status = c1.selectbox("Status", STATUSES, index=STATUSES.index(sel["status"]))
            notes = c2.text_input("Notes", value=sel.get("notes") or "")
            b1, b2 = st.columns([1, 5])
            save = b1.form_submit_button("Update", type="primary")
            delete = b2.form_submit_button("Delete")
        if save:
            res = client.update_selection(sel["id"], status=status, notes=notes)
            if res.ok:
                st.rerun()
            else:
                st.error(f"Update failed: {error_message(res)}")
        if delete:
            res = client.delete_selection(sel["id"])
            if res.ok:
                st.rerun()
            else:
                st.error(f"Delete failed: {error_message(res)}")
