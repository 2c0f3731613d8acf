import time
from concurrent.futures import ThreadPoolExecutor

import streamlit as st

from client import (
    AnalysisOutcome,
    ScoreClient,
    SelectedImage,
    format_factor_name,
    progress_label,
    progress_percent,
    score_band,
    top_factors,
    validate_selection,
)

PAGE_TITLE = "X Viral Score"

BAND_COLORS = {
    "hot": "#ef4444",
    "warm": "#f97316",
    "mild": "#eab308",
    "cool": "#64748b",
}

REACH_COLORS = {
    "Explosive": "#ef4444",
    "High": "#f97316",
    "Medium": "#eab308",
    "Low": "#64748b",
}

st.set_page_config(page_title=PAGE_TITLE, layout="centered")

# ---------- STYLING ----------
st.markdown(
    """
    <style>
    .card {
        background: rgba(15,23,42,0.96);
        border-radius: 1.15rem;
        padding: 1.2rem 1.25rem 1.3rem;
        border: 1px solid rgba(148,163,184,0.25);
        color: #e5e7eb;
    }

    .score-value {
        font-size: 3.6rem;
        font-weight: 700;
        line-height: 1;
        text-align: center;
    }

    .pill {
        display: inline-block;
        font-size: 0.72rem;
        font-weight: 700;
        padding: 0.2rem 0.8rem;
        border-radius: 999px;
        color: white;
    }

    .review-item {
        font-size: 0.85rem;
        padding: 0.35rem 0.5rem;
        border-radius: 0.7rem;
        border: 1px solid rgba(31,41,55,0.75);
        margin-bottom: 0.28rem;
    }
    </style>
    """,
    unsafe_allow_html=True,
)

# ---------- STATE ----------
if "last_result" not in st.session_state:
    st.session_state.last_result = None

if "last_error" not in st.session_state:
    st.session_state.last_error = ""

if "last_warnings" not in st.session_state:
    st.session_state.last_warnings = []


def run_with_progress(client: ScoreClient, text: str, images) -> AnalysisOutcome:
    """Run the analysis on a worker thread while the bar creeps to 95%."""
    bar = st.progress(0, text=progress_label(0, bool(images)))
    start = time.time()
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(client.analyze, text, images)
        while not future.done():
            pct = progress_percent(time.time() - start)
            bar.progress(pct, text=f"{progress_label(pct, bool(images))} {pct}%")
            time.sleep(0.1)
        outcome = future.result()
    bar.progress(100, text=progress_label(100, bool(images)))
    time.sleep(0.5)
    bar.empty()
    return outcome


# ---------- HEADER ----------
st.markdown(f"## {PAGE_TITLE}")
st.markdown("**Will your X post go viral?** Add text and images to see your score.")

# =========================================================
# INPUT
# =========================================================
text_input = st.text_area("1. Enter text", placeholder="Enter your post content here...", height=140)
uploaded = st.file_uploader(
    "2. Upload images (optional)",
    type=["png", "jpg", "jpeg", "webp", "gif"],
    accept_multiple_files=True,
)

images = [SelectedImage(f.name, f.getvalue(), f.type or "") for f in uploaded or []]
if images:
    st.caption(f"📸 {len(images)} image{'s' if len(images) > 1 else ''} selected (will upload on Analyze)")
    cols = st.columns(min(len(images), 4))
    for i, img in enumerate(images):
        with cols[i % len(cols)]:
            st.image(img.data, caption=f"{img.name[:17]}{'...' if len(img.name) > 20 else ''} · {img.size / 1024:.1f} KB")

selection_problem = validate_selection(images)
if selection_problem:
    st.error(selection_problem)

analyze_clicked = st.button(
    "Analyze",
    disabled=bool(selection_problem) or (not text_input.strip() and not images),
)

if analyze_clicked:
    outcome = run_with_progress(ScoreClient(), text_input, images)
    st.session_state.last_error = outcome.error or ""
    st.session_state.last_warnings = outcome.warnings
    st.session_state.last_result = outcome.result

# =========================================================
# RESULT
# =========================================================
if st.session_state.last_error:
    st.error(st.session_state.last_error)

for warning in st.session_state.last_warnings:
    st.warning(warning)

result = st.session_state.last_result
if not result:
    st.stop()

score = result.get("overall_score")
reach = result.get("predicted_reach") or "Unknown"

st.markdown(
    f"""
    <div class="card">
        <div class="score-value" style="color:{BAND_COLORS[score_band(score)]};">{score}</div>
        <div style="text-align:center;font-weight:600;margin-top:0.4rem;">/ 100</div>
        <div style="text-align:center;margin-top:0.6rem;">
            <span class="pill" style="background:{REACH_COLORS.get(reach, '#64748b')};">{reach}</span>
        </div>
    </div>
    """,
    unsafe_allow_html=True,
)

if result.get("short_explanation"):
    st.markdown(f"> {result['short_explanation']}")

st.markdown("#### Factors")
for name, value in top_factors(result.get("factors")):
    st.progress(min(max(value, 0), 100), text=f"{format_factor_name(name)}: {value}")

reasons = (result.get("detailed_reasons") or [])[:4]
if reasons:
    st.markdown("#### Why this score")
    for reason in reasons:
        st.markdown(f"<div class='review-item'>• {reason}</div>", unsafe_allow_html=True)

suggestions = (result.get("improvement_suggestions") or [])[:3]
if suggestions:
    st.markdown("#### How to improve")
    for suggestion in suggestions:
        st.markdown(f"<div class='review-item'>→ {suggestion}</div>", unsafe_allow_html=True)

if result.get("analysis_id") and result.get("db_saved"):
    st.caption(f"✅ Record saved (ID: {result['analysis_id']})")
