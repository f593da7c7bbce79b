from pathlib import Path

import streamlit as st

CSS_PATH = Path(__file__).parent / "assets" / "styles.css"

_BASE_CSS = """
.card {border:1px solid #e6e9ef;border-radius:12px;padding:14px 16px;margin-bottom:8px;background:#fff}
.kpi {font-size:1.6rem;font-weight:700;line-height:1.2}
.caption {color:#6b7280;font-size:0.85rem}
.badge {display:inline-block;padding:2px 8px;border-radius:999px;background:#eef2ff;color:#3730a3;font-size:0.75rem;margin:2px}
.ok {color:#047857} .warn {color:#b45309}
"""


def inject_css():
    css = _BASE_CSS
    if CSS_PATH.exists():
        css += CSS_PATH.read_text(encoding="utf-8")
    st.markdown(f"<style>{css}</style>", unsafe_allow_html=True)


def app_header(title: str, subtitle: str = ""):
    cols = st.columns([6, 2])
    with cols[0]:
        st.markdown(f"## {title}")
        if subtitle:
            st.caption(subtitle)
    with cols[1]:
        st.markdown(
            "<div class='badge'>Super</div> "
            "<div class='badge'>Property</div> "
            "<div class='badge'>ETFs</div> "
            "<div class='badge'>AU tax 2024-25</div>",
            unsafe_allow_html=True,
        )


def step_header(step: int, title: str, explainer: str = ""):
    st.markdown(f"### Step {step}: {title}")
    if explainer:
        st.write(explainer)


def small_help(text: str):
    st.caption(text)


def money(x: float) -> str:
    return f"${x:,.0f}"


def kpi_card(col, caption: str, value: str, note: str = "", tone: str = ""):
    cls = f"kpi {tone}".strip()
    note_html = f"<div class='caption'>{note}</div>" if note else ""
    col.markdown(
        f"<div class='card'><div class='caption'>{caption}</div>"
        f"<div class='{cls}'>{value}</div>{note_html}</div>",
        unsafe_allow_html=True,
    )


def nav_row(back_to: int = None, next_label="Save & Next →"):
    cols = st.columns([1, 1, 6])
    back_clicked = False
    if back_to is not None:
        back_clicked = cols[0].form_submit_button("⬅️ Back", use_container_width=True)
    submit = cols[1].form_submit_button(next_label, type="primary", use_container_width=True)
    return back_clicked, submit
