"""Main Streamlit app entrypoint.

Run:
    streamlit run ui/app.py

"""

from __future__ import annotations

import sys
from pathlib import Path

import streamlit as st

# Ensure project root is on PYTHONPATH when Streamlit runs this file
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ui.database import crud
from ui.database.db import db_session


def _inject_css() -> None:
    st.markdown(
        """
        <style>
        .block-container { padding-top: 1.2rem; }
        div[data-testid="stMetric"] { background: #0b1220; border: 1px solid rgba(255,255,255,0.08); padding: 12px; border-radius: 12px; }
        </style>
        """,
        unsafe_allow_html=True,
    )


def _roster_counts() -> dict:
    with db_session() as conn:
        settings = crud.get_school_settings(conn)
        return {
            "configured": settings is not None,
            "teachers": len(crud.list_teachers(conn)),
            "subjects": len(crud.list_subjects(conn)),
            "classrooms": len(crud.list_classrooms(conn)),
            "timetables": len(crud.list_generated_timetables(conn)),
        }


def main() -> None:
    st.set_page_config(
        page_title="School Timetable Generator",
        page_icon="🗓️",
        layout="wide",
    )
    _inject_css()

    st.sidebar.title("Timetables")
    st.sidebar.caption("Weekly class timetable generation")

    st.title("Dashboard")
    st.write(
        "Roster data (school settings, teachers, subjects, classrooms) is read from the SQLite database. "
        "Use the Class Timetable page to generate and browse timetables per grade and class."
    )

    counts = _roster_counts()

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Teachers", counts["teachers"])
    c2.metric("Subjects", counts["subjects"])
    c3.metric("Classrooms", counts["classrooms"])
    c4.metric("Saved timetables", counts["timetables"])

    st.divider()
    if not counts["configured"]:
        st.warning("School settings are missing. Run `python scripts/run_class_demo.py --seed-only` to load sample data.")
    else:
        st.info("Open the Class Timetable page from the sidebar to generate a timetable.")


if __name__ == "__main__":
    main()
