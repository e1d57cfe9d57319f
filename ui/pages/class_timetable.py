"""Class Timetable page.

Generates the weekly timetable of one grade + class section from the SQLite
roster and shows:
- Statistics
- Class timetable view
- Teacher timetable view
- Violations
- Excel / ZIP / Markdown / PNG export

Saved timetables (successful runs) can be browsed and re-opened.

"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import streamlit as st

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from modules.timetable_generator import TimetableGenerationService
from modules.timetable_models import GENERATION_METHODS, GenerationResult, Timetable
from ui.database.db import DBConfig
from ui.database.store import SqliteSchoolDataProvider, SqliteTimetableStore
from utils.timetable_export import (
    ImageExportOptions,
    class_timetable_df,
    df_to_markdown,
    df_to_png_bytes,
    statistics_df,
    teacher_ids,
    teacher_timetable_df,
    timetable_reports_zip_bytes,
    timetable_workbook_bytes,
    violations_df,
)


def _build_service(config: Optional[DBConfig] = None) -> TimetableGenerationService:
    return TimetableGenerationService(SqliteSchoolDataProvider(config), SqliteTimetableStore(config))


def _options_from_inputs(
    *,
    method: str,
    max_iterations: int,
    timeout_ms: int,
    quality_threshold: float,
    seed: Optional[int],
) -> Dict[str, Any]:
    opts: Dict[str, Any] = {
        "method": str(method),
        "max_iterations": int(max_iterations),
        "timeout_ms": int(timeout_ms),
        "quality_threshold": float(quality_threshold),
    }
    if seed is not None:
        opts["seed"] = int(seed)
    return opts


def _saved_label(entry: Dict[str, Any]) -> str:
    stats = entry.get("statistics") or {}
    quality = stats.get("quality_score")
    q = f"{float(quality):.1f}%" if quality is not None else "n/a"
    return f"{entry['generated_at']} | Grade {entry['grade']}-{entry['class_section']} | quality {q} | {entry['id'][:8]}"


def _status_line(result: GenerationResult) -> str:
    if result.success and result.persisted:
        return f"{result.message} Saved as {result.timetable_id}."
    if result.success and result.persistence_error:
        return f"{result.message} Not saved: {result.persistence_error}"
    return result.message


def _render_timetable(
    timetable: Timetable,
    *,
    grade: int,
    class_section: str,
    result: Optional[GenerationResult] = None,
    key_prefix: str = "tt",
) -> None:
    statistics = result.statistics if result else None
    violations = result.violations if result else ()

    tab_class, tab_teacher, tab_viol, tab_stats = st.tabs(["Class", "Teachers", "Violations", "Statistics"])

    class_df = class_timetable_df(timetable)
    with tab_class:
        st.caption("Cells show SUBJECT (TEACHER); fixed lessons are marked with *.")
        st.dataframe(class_df, use_container_width=True, hide_index=True)
        c1, c2 = st.columns(2)
        c1.download_button(
            "Download Markdown",
            data=df_to_markdown(class_df).encode("utf-8"),
            file_name=f"class_{grade}{class_section}.md",
            mime="text/markdown",
            key=f"{key_prefix}_md",
        )
        c2.download_button(
            "Download PNG",
            data=df_to_png_bytes(class_df, options=ImageExportOptions(title=f"Grade {grade}-{class_section}")),
            file_name=f"class_{grade}{class_section}.png",
            mime="image/png",
            key=f"{key_prefix}_png",
        )

    with tab_teacher:
        tids = teacher_ids(timetable)
        if not tids:
            st.info("No teacher assignments.")
        else:
            tid = st.selectbox("Teacher", options=tids, key=f"{key_prefix}_teacher")
            st.dataframe(teacher_timetable_df(timetable, tid), use_container_width=True, hide_index=True)

    with tab_viol:
        if violations:
            st.dataframe(violations_df(violations), use_container_width=True, hide_index=True)
        else:
            st.success("No constraint violations.")

    with tab_stats:
        st.dataframe(statistics_df(statistics), use_container_width=True, hide_index=True)

    c1, c2 = st.columns(2)
    c1.download_button(
        "Download Excel",
        data=timetable_workbook_bytes(
            timetable=timetable,
            grade=grade,
            class_section=class_section,
            statistics=statistics,
            violations=violations,
        ),
        file_name=f"timetable_{grade}{class_section}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        key=f"{key_prefix}_xlsx",
    )
    c2.download_button(
        "Download ZIP",
        data=timetable_reports_zip_bytes(
            timetable=timetable,
            grade=grade,
            class_section=class_section,
            statistics=statistics,
            violations=violations,
        ),
        file_name=f"timetable_{grade}{class_section}.zip",
        mime="application/zip",
        key=f"{key_prefix}_zip",
    )


def main() -> None:
    st.title("Class Timetable")

    service = _build_service()

    if "class_last_result" not in st.session_state:
        st.session_state["class_last_result"] = None

    c1, c2 = st.columns(2)
    grade = int(c1.selectbox("Grade", options=[1, 2, 3, 4, 5, 6]))
    class_section = c2.text_input("Class", value="A", max_chars=1).strip().upper()

    with st.expander("Options"):
        o1, o2, o3 = st.columns(3)
        method = o1.selectbox("Method", options=list(GENERATION_METHODS), index=1)
        max_iterations = o2.number_input("Max iterations", min_value=0, max_value=10_000, value=1000, step=100)
        timeout_ms = o3.number_input("Timeout (ms)", min_value=1, max_value=300_000, value=60_000, step=1000)
        o4, o5 = st.columns(2)
        quality_threshold = o4.slider("Quality threshold", 0.0, 100.0, 75.0, 1.0)
        seed_text = o5.text_input("Seed (optional)", value="")

    seed = int(seed_text) if seed_text.strip().isdigit() else None

    if st.button("Generate Timetable", type="primary"):
        options = _options_from_inputs(
            method=method,
            max_iterations=int(max_iterations),
            timeout_ms=int(timeout_ms),
            quality_threshold=float(quality_threshold),
            seed=seed,
        )
        with st.spinner("Generating..."):
            result = service.generate_timetable_for_class(grade, class_section, options)
        st.session_state["class_last_result"] = {"grade": grade, "class_section": class_section, "result": result}

    last = st.session_state.get("class_last_result")
    if last:
        result: GenerationResult = last["result"]
        line = _status_line(result)
        if result.success:
            st.success(line)
        else:
            st.error(line)
        for err in result.errors:
            st.write(f"- `{err.field}`: {err.message}")

        if result.statistics:
            m1, m2, m3, m4 = st.columns(4)
            m1.metric("Assignment rate", f"{result.statistics.assignment_rate:.1f}%")
            m2.metric("Quality", f"{result.statistics.quality_score:.1f}%")
            m3.metric("Violations", result.statistics.constraint_violations)
            m4.metric("Time (ms)", result.statistics.generation_time_ms)

        if result.timetable:
            _render_timetable(
                result.timetable,
                grade=last["grade"],
                class_section=last["class_section"],
                result=result,
                key_prefix="last",
            )

    st.divider()
    st.subheader("Saved timetables")

    saved = service.get_saved_timetables({"grade": grade})
    if saved.get("error"):
        st.error(saved["error"])
    entries: List[Dict[str, Any]] = saved.get("timetables", [])
    if not entries:
        st.caption("No saved timetables for this grade.")
        return

    labels = [_saved_label(e) for e in entries]
    sel = st.selectbox("Open saved timetable", options=[""] + labels)
    if sel:
        entry = entries[labels.index(sel)]
        record = service.get_saved_timetable(entry["id"])
        if record is None:
            st.error("Saved timetable could not be loaded.")
            return
        _render_timetable(
            record["timetable"],
            grade=int(record["grade"]),
            class_section=str(record["class_section"]),
            key_prefix="saved",
        )


if __name__ == "__main__":
    main()
