from __future__ import annotations

import io
import zipfile
from dataclasses import asdict, dataclass
from typing import Optional, Sequence

import pandas as pd

from modules.timetable_models import (
    ConstraintViolation,
    GenerationStatistics,
    Timetable,
    format_class_timetable,
    format_teacher_timetable,
    iter_cells,
)


def _safe_sheet_name(name: str) -> str:
    """Excel sheet names: max 31 chars, cannot contain: `: \\ / ? * [ ]`."""

    bad = [":", "\\", "/", "?", "*", "[", "]"]
    out = str(name or "Sheet")
    for b in bad:
        out = out.replace(b, "-")
    out = out.strip() or "Sheet"
    return out[:31]


def _timetable_df_from_table(*, day_names: list[str], periods: int, table: list[list[str]]) -> pd.DataFrame:
    """Convert a (days x periods) table into a spreadsheet-style DataFrame."""

    columns = [str(i) for i in range(1, int(periods) + 1)]
    df = pd.DataFrame(table, columns=columns)
    df.insert(0, "DAY", day_names)
    return df


def _day_names(timetable: Timetable) -> list[str]:
    return [day[0][0].day if day and day[0] else "" for day in timetable]


def _periods(timetable: Timetable) -> int:
    return len(timetable[0]) if timetable else 0


def class_timetable_df(timetable: Timetable, class_index: int = 0) -> pd.DataFrame:
    """Class timetable (rows=days, columns=periods); fixed lessons end with ' *'."""

    return _timetable_df_from_table(
        day_names=_day_names(timetable),
        periods=_periods(timetable),
        table=format_class_timetable(timetable, class_index=class_index),
    )


def teacher_timetable_df(timetable: Timetable, teacher_id: str) -> pd.DataFrame:
    return _timetable_df_from_table(
        day_names=_day_names(timetable),
        periods=_periods(timetable),
        table=format_teacher_timetable(timetable, teacher_id),
    )


def teacher_ids(timetable: Timetable) -> list[str]:
    return sorted({slot.teacher_id for _d, _p, _c, slot in iter_cells(timetable) if slot.teacher_id})


def violations_df(violations: Sequence[ConstraintViolation]) -> pd.DataFrame:
    rows = [
        {
            "kind": v.kind,
            "severity": v.severity,
            "description": v.description,
            "slots": ", ".join(f"{r.day} P{r.period}" for r in v.affected_slots),
            "suggested_fix": v.suggested_fix,
        }
        for v in violations
    ]
    return pd.DataFrame(rows, columns=["kind", "severity", "description", "slots", "suggested_fix"])


def statistics_df(statistics: Optional[GenerationStatistics]) -> pd.DataFrame:
    """Two-column (metric, value) table."""

    data = asdict(statistics) if statistics is not None else {}
    return pd.DataFrame(list(data.items()), columns=["metric", "value"])


def timetable_workbook_bytes(
    *,
    timetable: Timetable,
    grade: int,
    class_section: str,
    statistics: Optional[GenerationStatistics] = None,
    violations: Sequence[ConstraintViolation] = (),
) -> bytes:
    """Build a multi-sheet Excel workbook.

    Includes:
    - Class timetable with a small header block
    - One sheet per teacher (individual timetable)
    - Statistics and violations
    """

    out = io.BytesIO()

    with pd.ExcelWriter(out, engine="openpyxl") as writer:
        header_df = pd.DataFrame(
            [["GRADE", grade], ["CLASS", class_section]],
            columns=["Field", "Value"],
        )
        sheet = _safe_sheet_name(f"Class {grade}-{class_section}")
        header_df.to_excel(writer, sheet_name=sheet, index=False, startrow=0)
        class_timetable_df(timetable).to_excel(writer, sheet_name=sheet, index=False, startrow=len(header_df) + 2)

        for tid in teacher_ids(timetable):
            teacher_timetable_df(timetable, tid).to_excel(
                writer, sheet_name=_safe_sheet_name(f"Teacher-{tid}"), index=False
            )

        statistics_df(statistics).to_excel(writer, sheet_name="Statistics", index=False)
        violations_df(violations).to_excel(writer, sheet_name="Violations", index=False)

    return out.getvalue()


def timetable_reports_zip_bytes(
    *,
    timetable: Timetable,
    grade: int,
    class_section: str,
    statistics: Optional[GenerationStatistics] = None,
    violations: Sequence[ConstraintViolation] = (),
) -> bytes:
    """ZIP with the workbook plus CSV copies of every table."""

    wb = timetable_workbook_bytes(
        timetable=timetable,
        grade=grade,
        class_section=class_section,
        statistics=statistics,
        violations=violations,
    )

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as z:
        z.writestr("timetable.xlsx", wb)
        z.writestr(
            f"timetables/class_{grade}{class_section}.csv",
            class_timetable_df(timetable).to_csv(index=False).encode("utf-8"),
        )
        for tid in teacher_ids(timetable):
            z.writestr(
                f"timetables/teachers/{tid}.csv",
                teacher_timetable_df(timetable, tid).to_csv(index=False).encode("utf-8"),
            )
        z.writestr("tables/statistics.csv", statistics_df(statistics).to_csv(index=False).encode("utf-8"))
        z.writestr("tables/violations.csv", violations_df(violations).to_csv(index=False).encode("utf-8"))

    return buf.getvalue()


@dataclass(frozen=True)
class ImageExportOptions:
    title: Optional[str] = None
    font_size: int = 10
    cell_height: float = 0.35
    cell_width: float = 1.2


def df_to_markdown(df: pd.DataFrame) -> str:
    """Convert DataFrame to a GitHub-flavored Markdown table."""

    # pandas to_markdown needs tabulate; a small renderer is enough here.
    cols = list(df.columns)
    rows = df.astype(str).values.tolist()

    def esc(s: str) -> str:
        return str(s).replace("\n", " ").replace("|", "\\|")

    header = "| " + " | ".join(esc(c) for c in cols) + " |"
    sep = "| " + " | ".join(["---"] * len(cols)) + " |"
    body = ["| " + " | ".join(esc(v) for v in r) + " |" for r in rows]
    return "\n".join([header, sep] + body) + "\n"


def df_to_png_bytes(df: pd.DataFrame, *, options: ImageExportOptions = ImageExportOptions()) -> bytes:
    """Render a DataFrame as a PNG image (bytes) using matplotlib's table artist."""

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    nrows, ncols = df.shape

    fig_w = max(6.0, float(options.cell_width) * (ncols + 1))
    fig_h = max(2.0, float(options.cell_height) * (nrows + 2))

    fig, ax = plt.subplots(figsize=(fig_w, fig_h))
    ax.axis("off")

    if options.title:
        ax.set_title(options.title, fontsize=options.font_size + 2, pad=12)

    tbl = ax.table(
        cellText=df.values,
        colLabels=list(df.columns),
        cellLoc="center",
        loc="center",
    )

    tbl.auto_set_font_size(False)
    tbl.set_fontsize(options.font_size)
    tbl.scale(1.0, 1.4)

    for (r, _c), cell in tbl.get_celld().items():
        cell.set_linewidth(0.6)
        if r == 0:
            cell.set_facecolor("#f0f2f6")
            cell.set_text_props(weight="bold")

    buf = io.BytesIO()
    fig.tight_layout()
    fig.savefig(buf, format="png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    return buf.getvalue()
