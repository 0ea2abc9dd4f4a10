#!/usr/bin/env python
"""
Streamlit Web UI for the math problem variation generator.

Run with:
    streamlit run src/mathvariant/app.py

Features:
- Text or image input for a problem and its solution
- Multi-profile OCR with confidence display and editable results
- Numeric variants via Gemini (local fallback when unavailable)
- Download of the variants as TXT, Markdown, DOCX or JSON
"""

import sys
from pathlib import Path

# Add the src directory to path for imports when running as script
_src_dir = Path(__file__).parent.parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import json
import random
import logging

import streamlit as st

from mathvariant.config import get_config
from mathvariant.utils.assembler import ProblemAssembler, SingleProblem
from mathvariant.utils.export import DocxExporter, MarkdownExporter, TextExporter, default_filename
from mathvariant.utils.io import EnhancedJSONEncoder, read_upload
from mathvariant.utils.outcomes import InvalidUploadError, MANUAL_ENTRY_MESSAGE

logger = logging.getLogger("mathvariant.app")


# Page config must be first Streamlit command
st.set_page_config(
    page_title="Math Problem Variations",
    page_icon="🧮",
    layout="wide",
    initial_sidebar_state="expanded"
)


def load_css():
    """Load custom CSS styles."""
    st.markdown("""
    <style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        color: #1E88E5;
        text-align: center;
        margin-bottom: 1rem;
    }
    .sub-header {
        font-size: 1.2rem;
        color: #888;
        text-align: center;
        margin-bottom: 2rem;
    }
    .variant-block {
        background-color: rgba(30, 136, 229, 0.1);
        border-radius: 5px;
        padding: 1rem;
        margin: 0.5rem 0;
        border-left: 4px solid #1E88E5;
    }
    </style>
    """, unsafe_allow_html=True)


def init_session_state():
    """Initialize session state variables."""
    defaults = {
        "extraction": {},
        "uploads": {},
        "variation_set": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


@st.cache_data(ttl=300)  # Cache for 5 minutes
def check_engine_availability():
    """Check Tesseract (with language data) and Gemini configuration."""
    engines = {}

    try:
        import pytesseract
        pytesseract.get_tesseract_version()
        languages = set(pytesseract.get_languages(config=""))
        missing = {"kor", "eng"} - languages
        if missing:
            engines["tesseract"] = {"available": False, "error": f"missing language data: {', '.join(sorted(missing))}"}
        else:
            engines["tesseract"] = {"available": True, "error": None}
    except Exception as e:
        engines["tesseract"] = {"available": False, "error": str(e)[:50]}

    try:
        import google.generativeai  # noqa: F401
        if get_config().variation.gemini_api_key:
            engines["gemini"] = {"available": True, "error": None}
        else:
            engines["gemini"] = {"available": False, "error": "set GEMINI_API_KEY"}
    except ImportError:
        engines["gemini"] = {"available": False, "error": "pip install google-generativeai"}

    return engines


def render_engine_status_row(name: str, available: bool, error: str = None):
    """Render a single engine status row with colored indicator."""
    col1, col2 = st.columns([4, 1])
    with col1:
        st.markdown(f"**{name}**")
        if not available and error:
            st.caption(f"{error}")
    with col2:
        color = "#22c55e" if available else "#ef4444"
        st.markdown(
            f"<div style='text-align:right'><span style='color:{color};font-size:20px'>●</span></div>",
            unsafe_allow_html=True
        )


def render_sidebar():
    """Render sidebar with settings."""
    st.sidebar.header("⚙️ Settings")

    engines = check_engine_availability()
    config = get_config()

    st.sidebar.subheader("Variants")

    count = st.sidebar.slider(
        "Number of variants",
        min_value=config.variation.min_count,
        max_value=config.variation.max_count,
        value=config.variation.default_count,
        help="Total problems shown = variants + original"
    )

    use_ai = st.sidebar.checkbox(
        "Use Gemini",
        value=engines["gemini"]["available"],
        help="Unchecked or unavailable: numbers are varied locally"
    )

    seed = st.sidebar.number_input(
        "Random seed (0 = random)",
        min_value=0,
        value=0,
        step=1,
        help="Makes local variation reproducible"
    )

    with st.sidebar.expander("Engine Status", expanded=False):
        render_engine_status_row("Tesseract", engines["tesseract"]["available"], engines["tesseract"]["error"])
        st.divider()
        render_engine_status_row("Gemini", engines["gemini"]["available"], engines["gemini"]["error"])

    return {
        "count": count,
        "use_ai": use_ai,
        "seed": int(seed) or None,
    }


def build_assembler(settings: dict) -> ProblemAssembler:
    config = get_config()
    config.variation.use_ai = settings["use_ai"]
    rng = random.Random(settings["seed"]) if settings["seed"] else None
    return ProblemAssembler(config=config, rng=rng)


def render_image_inputs(settings: dict):
    """Upload widgets plus OCR for the problem and solution images."""
    config = get_config()
    col_problem, col_solution = st.columns(2)
    uploads = {}

    for label, column in (("problem", col_problem), ("solution", col_solution)):
        with column:
            uploaded = st.file_uploader(
                f"{label.capitalize()} image",
                type=[ext.lstrip(".") for ext in config.export.image_extensions],
                key=f"{label}_upload"
            )
            if uploaded is None:
                continue

            try:
                uploads[label] = read_upload(
                    uploaded.getvalue(),
                    filename=uploaded.name,
                    content_type=uploaded.type,
                    max_bytes=config.export.max_upload_bytes
                )
            except InvalidUploadError as e:
                st.error(str(e))
                continue

            st.image(uploaded.getvalue(), caption=uploaded.name, use_container_width=True)

    st.session_state.uploads = uploads

    if uploads and st.button("🔍 Extract text", use_container_width=True):
        with st.spinner("Recognizing text..."):
            try:
                assembler = build_assembler(settings)
                st.session_state.extraction = assembler.extract_pair(
                    uploads.get("problem"), uploads.get("solution")
                )
            except ImportError as e:
                st.error(str(e))

    texts = {}
    for label in ("problem", "solution"):
        result = st.session_state.extraction.get(label)
        if result is None:
            continue

        if result.ok:
            st.success(f"{label.capitalize()}: recognized with confidence {result.confidence:.1f}%")
            if result.degraded_reason:
                st.caption(f"Image enhancement skipped ({result.degraded_reason})")
            initial = result.text
        else:
            st.warning(f"{label.capitalize()}: {result.message}")
            initial = ""

        texts[label] = st.text_area(
            f"{label.capitalize()} text (edit if needed)",
            value=initial,
            placeholder=MANUAL_ENTRY_MESSAGE,
            key=f"{label}_extracted"
        )

    return texts.get("problem", ""), texts.get("solution", ""), uploads


def render_text_inputs():
    problem_text = st.text_area("Problem", height=120, placeholder="Enter the math problem...")
    solution_text = st.text_area("Solution", height=120, placeholder="Enter the solution...")
    return problem_text, solution_text


def render_variants(variation_set):
    """Show the original and each variant."""
    st.subheader("🧮 Generated problems")

    for problem in variation_set.problems:
        title = "Original" if not problem.is_generated else problem.sequence
        with st.expander(title, expanded=not problem.is_generated):
            col1, col2 = st.columns(2)
            with col1:
                st.markdown("**Problem**")
                if problem.problem_text:
                    st.markdown(problem.problem_text)
                elif problem.problem_image is not None:
                    st.image(problem.problem_image.data, width=300)
            with col2:
                st.markdown("**Solution**")
                if problem.solution_text:
                    st.markdown(problem.solution_text)
                elif problem.solution_image is not None:
                    st.image(problem.solution_image.data, width=300)

            variation = problem.problem_variation
            if variation is not None and variation.changed:
                changes = ", ".join(
                    f"{old} → {new}"
                    for old, new in zip(variation.original_numbers, variation.modified_numbers)
                )
                st.caption(f"Changed numbers: {changes} ({variation.source})")


def render_downloads(variation_set):
    """Render download buttons."""
    st.subheader("📥 Downloads")
    config = get_config()
    prefix = config.export.filename_prefix
    title = config.export.title

    cols = st.columns(4)

    with cols[0]:
        st.download_button(
            "📄 TXT",
            TextExporter(title).render(variation_set),
            file_name=default_filename(prefix, "txt"),
            mime="text/plain",
            use_container_width=True
        )

    with cols[1]:
        st.download_button(
            "📝 Markdown",
            MarkdownExporter(title).render(variation_set),
            file_name=default_filename(prefix, "md"),
            mime="text/markdown",
            use_container_width=True
        )

    with cols[2]:
        try:
            docx_bytes = DocxExporter(title).render(variation_set)
            st.download_button(
                "📋 DOCX",
                docx_bytes,
                file_name=default_filename(prefix, "docx"),
                mime="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
                use_container_width=True
            )
        except ImportError:
            st.button(
                "📋 DOCX ❌",
                use_container_width=True,
                help="Install python-docx: pip install python-docx",
                disabled=True
            )

    with cols[3]:
        st.download_button(
            "🗂️ JSON",
            json.dumps(variation_set.to_dict(), indent=2, ensure_ascii=False, cls=EnhancedJSONEncoder),
            file_name=default_filename(prefix, "json"),
            mime="application/json",
            use_container_width=True
        )


def main():
    """Main application."""
    load_css()
    init_session_state()

    st.markdown('<h1 class="main-header">🧮 Math Problem Variations</h1>', unsafe_allow_html=True)
    st.markdown(
        '<p class="sub-header">Enter or photograph one problem and get numerically varied copies</p>',
        unsafe_allow_html=True
    )

    settings = render_sidebar()

    st.markdown("---")

    mode = st.radio("Input mode", ["Text", "Image"], horizontal=True)
    uploads = {}
    if mode == "Text":
        problem_text, solution_text = render_text_inputs()
    else:
        problem_text, solution_text, uploads = render_image_inputs(settings)

    problem = SingleProblem(
        problem_text=problem_text.strip(),
        solution_text=solution_text.strip(),
        problem_image=uploads.get("problem"),
        solution_image=uploads.get("solution"),
    )

    if st.button("🚀 Generate variants", type="primary", use_container_width=True):
        if not problem.is_complete:
            st.error("Please provide both the problem and the solution.")
        else:
            logger.info(f"Generating {settings['count']} variant(s) from {mode.lower()} input")
            with st.spinner("Generating variants..."):
                assembler = build_assembler(settings)
                st.session_state.variation_set = assembler.generate(problem, settings["count"])
            st.success("✅ Variants generated!")

    if st.session_state.variation_set:
        st.markdown("---")
        render_variants(st.session_state.variation_set)
        st.markdown("---")
        render_downloads(st.session_state.variation_set)

    st.markdown("---")
    st.markdown(
        """
        <div style="text-align: center; color: #666; font-size: 0.8rem;">
            Math Problem Variations v1.0 |
            Built with Streamlit, OpenCV, Tesseract and Gemini
        </div>
        """,
        unsafe_allow_html=True
    )


if __name__ == "__main__":
    main()
