"""
FrameNarrator: Testing UI
========================

A small Streamlit front end for the narration service.

Architecture:
    - Videos are uploaded to the service via POST /upload
    - Processing is triggered via POST /process-video
    - Thumbnails are loaded from GET /data/{filename}
    - Backends and concurrency are configured in config.yaml, NOT here

Usage:
    streamlit run ui/app.py

Environment:
    NARRATOR_BACKEND_URL: service HTTP root (default: http://localhost:8000)
"""

import os
from pathlib import PurePosixPath
from typing import Optional

import requests
import streamlit as st

# =============================================================================
# Configuration: only one env var, the rest lives in config.yaml
# =============================================================================

BACKEND_URL = os.getenv("NARRATOR_BACKEND_URL", "http://localhost:8000")

UPLOAD_TIMEOUT_SECONDS = 300
PROCESS_TIMEOUT_SECONDS = 1800
THUMBNAIL_COLUMNS = 4

# =============================================================================
# Page config
# =============================================================================

st.set_page_config(
    page_title="Frame Narrator",
    page_icon="🎞️",
    layout="wide",
)

# =============================================================================
# Networking helpers
# =============================================================================

def fetch_health() -> bool:
    """Check service liveness."""
    try:
        r = requests.get(f"{BACKEND_URL}/health", timeout=2)
        return r.status_code == 200
    except requests.RequestException:
        return False


def fetch_root() -> Optional[dict]:
    """Get service info (includes backend)."""
    try:
        r = requests.get(BACKEND_URL, timeout=2)
        if r.status_code == 200:
            return r.json()
    except requests.RequestException:
        pass
    return None


def upload_video(name: str, data: bytes, mime_type: Optional[str]) -> dict:
    """Upload a video; returns the service JSON body."""
    r = requests.post(
        f"{BACKEND_URL}/upload",
        files={"file": (name, data, mime_type or "application/octet-stream")},
        timeout=UPLOAD_TIMEOUT_SECONDS,
    )
    return r.json()


def process_video(video_path: str) -> dict:
    """Process an uploaded video; returns the service JSON body."""
    r = requests.post(
        f"{BACKEND_URL}/process-video",
        json={"video_path": video_path},
        timeout=PROCESS_TIMEOUT_SECONDS,
    )
    return r.json()


def ask_question(video_id: str, question: str) -> dict:
    """Ask the frame index about a processed video."""
    r = requests.post(
        f"{BACKEND_URL}/rag/query",
        json={"video_id": video_id, "question": question},
        timeout=PROCESS_TIMEOUT_SECONDS,
    )
    return r.json()


def thumbnail_url(path: Optional[str]) -> Optional[str]:
    """Map a stored frame path to its /data URL."""
    if not path:
        return None
    return f"{BACKEND_URL}/data/{PurePosixPath(path).name}"


# =============================================================================
# Main UI
# =============================================================================

def render_records(records: list) -> None:
    """Thumbnail grid with timestamp and description per record."""
    for start in range(0, len(records), THUMBNAIL_COLUMNS):
        columns = st.columns(THUMBNAIL_COLUMNS)
        for column, record in zip(columns, records[start:start + THUMBNAIL_COLUMNS]):
            with column:
                url = thumbnail_url(record.get("path"))
                if url:
                    st.image(url, use_container_width=True)
                st.caption(f"#{record['frame_id']} · {record['timestamp']:.2f}s")
                st.write(record["description"])


def main():
    if "result" not in st.session_state:
        st.session_state.result = None

    # ── Sidebar ───────────────────────────────────────────────────────────────
    with st.sidebar:
        st.header("Service")
        if fetch_health():
            st.success("🟢 Backend Online")
        else:
            st.error("🔴 Backend Offline")

        root_info = fetch_root()
        if root_info:
            st.markdown(f"**Backend:** `{root_info.get('backend', '-')}`")
            st.markdown(
                f"**Sample interval:** `{root_info.get('sample_interval_seconds', '-')}s`"
            )
        st.text(f"URL: {BACKEND_URL}")
        st.caption("Backends are set in the service config.yaml, not in this UI.")

    # ── Upload + Process ──────────────────────────────────────────────────────
    st.title("Frame Narrator")

    uploaded = st.file_uploader("Video", type=["mp4", "mov", "avi", "mkv", "webm"])

    if uploaded is not None and st.button("▶ Process", use_container_width=True):
        with st.spinner("Uploading…"):
            upload = upload_video(uploaded.name, uploaded.getvalue(), uploaded.type)

        if upload.get("status") != "ok":
            st.error(upload.get("message", "Upload failed"))
        else:
            with st.spinner("Selecting and describing frames…"):
                st.session_state.result = process_video(upload["video_path"])

    result = st.session_state.result
    if result is None:
        st.info("Upload a video to get started.")
        return

    if result.get("status") != "ok":
        st.error(result.get("message", "Processing failed"))
        return

    st.divider()
    st.subheader("Summary")
    st.write(result.get("summary") or "Summary disabled.")

    failures = result.get("failures") or []
    if failures:
        st.warning(
            "Failed frames: " + ", ".join(str(f["frame_id"]) for f in failures)
        )

    st.divider()
    records = result.get("records") or []
    st.subheader(f"Frames ({len(records)})")
    render_records(records)

    # ── Questions ─────────────────────────────────────────────────────────────
    indexing = result.get("indexing") or {}
    if indexing.get("status") != "ok":
        if indexing.get("message"):
            st.caption(indexing["message"])
        return

    st.divider()
    st.subheader("Ask about this video")
    question = st.text_input("Question", placeholder="What happens to the red car?")
    if question and st.button("Ask", use_container_width=True):
        with st.spinner("Searching frames…"):
            reply = ask_question(result["video_id"], question)
        if reply.get("status") == "error":
            st.error(reply.get("message", "Question failed"))
        else:
            st.write(reply.get("answer") or "No answer.")
            for match in reply.get("matches") or []:
                meta = match["metadata"]
                st.caption(f"#{meta.get('frame_id')} · {meta.get('timestamp', 0.0):.2f}s · score {match['score']:.2f}")


if __name__ == "__main__":
    main()
