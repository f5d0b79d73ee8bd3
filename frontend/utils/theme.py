"""
Shared theme, CSS injection and small HTML helpers for the Lab Test Desk
Streamlit frontend.
"""

from __future__ import annotations

import html

import requests
import streamlit as st

# ---------------------------------------------------------------------------
# Color palettes (light + dark)
# ---------------------------------------------------------------------------
COLORS_LIGHT: dict[str, str] = {
    "primary": "#1D6FB8",       # medical blue
    "primary_light": "#DCEBF8",
    "secondary": "#14946B",     # medical green
    "secondary_light": "#D7F2E7",
    "danger": "#DC2626",
    "danger_light": "#FEE2E2",
    "warning": "#D97706",
    "warning_light": "#FEF3C7",
    "text": "#1E293B",
    "text_muted": "#475569",
    "bg_card": "#FFFFFF",
    "bg_page": "#F5F8FB",
    "border": "#E2E8F0",
}

COLORS_DARK: dict[str, str] = {
    "primary": "#60A5FA",
    "primary_light": "#172554",
    "secondary": "#34D399",
    "secondary_light": "#022C22",
    "danger": "#F87171",
    "danger_light": "#450A0A",
    "warning": "#FBBF24",
    "warning_light": "#451A03",
    "text": "#F1F5F9",
    "text_muted": "#94A3B8",
    "bg_card": "#1E293B",
    "bg_page": "#0F172A",
    "border": "#334155",
}

STATUS_COLORS = {"pending": "warning", "completed": "secondary", "cancelled": "danger"}


def get_colors() -> dict[str, str]:
    """Return the active palette based on ``st.session_state.dark_mode``."""
    if st.session_state.get("dark_mode", False):
        return COLORS_DARK
    return COLORS_LIGHT


def plotly_layout_defaults(title: str = "", height: int = 300) -> dict:
    c = get_colors()
    return dict(
        title=dict(text=title, font=dict(size=15, color=c["text"])),
        template="plotly_dark" if st.session_state.get("dark_mode", False) else "plotly_white",
        height=height,
        margin=dict(l=20, r=20, t=50, b=20),
        font=dict(family="Inter, system-ui, sans-serif", size=13, color=c["text"]),
        paper_bgcolor="rgba(0,0,0,0)",
        plot_bgcolor="rgba(0,0,0,0)",
    )


_CSS_TEMPLATE = """
<style>
[data-testid="stAppViewContainer"] { background-color: %(bg_page)s; }
[data-testid="stSidebar"] { background-color: %(bg_card)s !important; }

.card {
    background: %(bg_card)s;
    border: 1px solid %(border)s;
    border-radius: 12px;
    padding: 20px;
    margin-bottom: 14px;
    box-shadow: 0 1px 3px rgba(0,0,0,0.06);
}
.patient-card { border-left: 4px solid %(primary)s; }
.patient-name { font-weight: 700; font-size: 1.1rem; color: %(primary)s; }
.info-label { color: %(text_muted)s; font-size: 0.75rem; text-transform: uppercase; letter-spacing: 0.04em; }
.info-value { color: %(text)s; font-size: 0.95rem; font-weight: 600; }

.kpi-tile {
    background: %(bg_card)s;
    border: 1px solid %(border)s;
    border-radius: 12px;
    padding: 18px;
    text-align: center;
}
.kpi-value { font-size: 1.9rem; font-weight: 800; line-height: 1.1; }
.kpi-label { font-size: 0.8rem; color: %(text_muted)s; text-transform: uppercase; margin-top: 6px; }

.section-title {
    font-size: 1.1rem;
    font-weight: 700;
    color: %(text)s;
    margin: 20px 0 10px 0;
    padding-bottom: 6px;
    border-bottom: 2px solid %(secondary)s;
    display: inline-block;
}

.status-badge {
    display: inline-block;
    padding: 2px 10px;
    border-radius: 9999px;
    font-size: 0.75rem;
    font-weight: 600;
    text-transform: uppercase;
}
.status-pending   { background: %(warning_light)s;   color: %(warning)s; }
.status-completed { background: %(secondary_light)s; color: %(secondary)s; }
.status-cancelled { background: %(danger_light)s;    color: %(danger)s; }

.pill {
    display: inline-block;
    padding: 3px 12px;
    border-radius: 9999px;
    font-size: 0.78rem;
    margin: 2px 4px 2px 0;
    border: 1px solid %(border)s;
    background: %(primary_light)s;
    color: %(primary)s;
}
.nav-card {
    background: %(bg_card)s;
    border: 1px solid %(border)s;
    border-radius: 12px;
    padding: 22px 16px;
    text-align: center;
    min-height: 150px;
}
.nav-icon { font-size: 1.8rem; margin-bottom: 6px; }
.nav-title { font-weight: 700; color: %(text)s; margin-bottom: 4px; }
.nav-desc { font-size: 0.82rem; color: %(text_muted)s; }

.test-code { color: %(secondary)s; font-size: 0.8rem; font-weight: 600; }
.muted { color: %(text_muted)s; font-size: 0.85rem; }
</style>
"""


def apply_theme() -> None:
    """Inject global CSS into the page. Call once at the top of every page."""
    if "dark_mode" not in st.session_state:
        st.session_state.dark_mode = False
    st.markdown(_CSS_TEMPLATE % get_colors(), unsafe_allow_html=True)


def render_sidebar() -> None:
    """Show the patient being served and the dark-mode toggle."""
    patient = st.session_state.get("patient")
    with st.sidebar:
        if patient:
            st.markdown(
                f"**Current patient**  \n{html.escape(patient['name'])}  \n"
                f"<span class='muted'>ID: {html.escape(patient['patient_id'])}</span>",
                unsafe_allow_html=True,
            )
            if st.button("Clear patient", use_container_width=True):
                st.session_state.patient = None
                st.rerun()
        else:
            st.caption("No patient selected. Use the **Patients** page to find one.")
        st.divider()

        dark = st.toggle("🌙 Dark mode", value=st.session_state.get("dark_mode", False), key="dark_mode_toggle")
        if dark != st.session_state.get("dark_mode", False):
            st.session_state.dark_mode = dark
            st.rerun()


def require_patient() -> dict:
    """Stop page execution unless a patient has been selected."""
    patient = st.session_state.get("patient")
    if not patient:
        st.warning("Please select a patient on the **Patients** page first.")
        st.stop()
    return patient


def kpi_tile(label: str, value: str | int | float, color: str) -> str:
    return (
        f'<div class="kpi-tile">'
        f'  <div class="kpi-value" style="color:{color};">{value}</div>'
        f'  <div class="kpi-label">{label}</div>'
        f'</div>'
    )


def section_title(text: str) -> None:
    st.markdown(f'<div class="section-title">{text}</div>', unsafe_allow_html=True)


def status_badge(status: str) -> str:
    key = status if status in STATUS_COLORS else "pending"
    return f'<span class="status-badge status-{key}">{html.escape(status)}</span>'


def pill_tag(text: str) -> str:
    return f'<span class="pill">{html.escape(text)}</span>'


def error_message(res: requests.Response) -> str:
    """Pull the human-readable message out of the API's error envelope."""
    try:
        return res.json().get("message") or res.text
    except ValueError:
        return res.text
