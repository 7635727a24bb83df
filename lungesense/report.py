"""
Summarize a lunge session (metrics JSON) into report.html + plots.
"""
from __future__ import annotations

import html
import json
import logging
import os
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Reps scoring at least this are counted as good form in the summary.
GOOD_QUALITY = 80


def load_session_metrics(metrics_path: str) -> dict[str, Any]:
    with open(metrics_path) as f:
        return json.load(f)


def _mean(vals: list[float]) -> Optional[float]:
    return sum(vals) / len(vals) if vals else None


def summarize_reps(data: dict[str, Any]) -> dict[str, Any]:
    """Aggregate per-rep entries into the numbers shown in the report."""
    reps = data.get("reps", [])
    qualities = [r["quality"] for r in reps if r.get("quality") is not None]
    durations = [r["duration_sec"] for r in reps if r.get("duration_sec") is not None]
    by_leg: dict[str, int] = {"left": 0, "right": 0}
    for r in reps:
        leg = r.get("leg")
        if leg in by_leg:
            by_leg[leg] += 1
    return {
        "rep_count": data.get("rep_count", len(reps)),
        "left_reps": by_leg["left"],
        "right_reps": by_leg["right"],
        "alternation_warnings": data.get("alternation_warnings", 0),
        "quality_avg": _mean(qualities),
        "quality_min": min(qualities) if qualities else None,
        "duration_avg": _mean(durations),
        "good_reps": sum(1 for q in qualities if q >= GOOD_QUALITY),
    }


def _tips(summary: dict[str, Any]) -> list[str]:
    tips = []
    if summary["alternation_warnings"] > 0:
        tips.append("Alternate your front leg every rep.")
    if abs(summary["left_reps"] - summary["right_reps"]) > 1:
        tips.append("Balance the number of reps on each leg.")
    q = summary["quality_avg"]
    if q is not None and q < GOOD_QUALITY:
        tips.append("Keep your front knee stacked over your ankle and drop the back knee toward the floor.")
    if not tips:
        tips.append("Nice work. Keep the same cues next set.")
    return tips


def run_session_report(
    metrics_path: str,
    output_dir: str,
    source: str = "live",
) -> str:
    """
    Load session metrics JSON, write report.html (+ quality/duration plots).
    Returns the report path.
    """
    os.makedirs(output_dir, exist_ok=True)
    data = load_session_metrics(metrics_path)
    reps = data.get("reps", [])
    summary = summarize_reps(data)
    logger.info(
        "report input: source=%s metrics_path=%s rep_count=%s left=%s right=%s",
        source, metrics_path, summary["rep_count"], summary["left_reps"], summary["right_reps"],
    )

    def _fmt(val: Any, spec: str = ".1f") -> str:
        if isinstance(val, (int, float)):
            return format(val, spec)
        return "--"

    report_lines = [
        "<!DOCTYPE html>",
        "<html><head><meta charset='utf-8'><title>Lunge Report</title></head><body>",
        "<h1>Lunge Session Report</h1>",
        f"<p><b>Source:</b> {html.escape(source)}</p>",
        f"<p><b>Total reps:</b> {summary['rep_count']} "
        f"(left {summary['left_reps']}, right {summary['right_reps']})</p>",
        f"<p><b>Average quality:</b> {_fmt(summary['quality_avg'])}% | "
        f"<b>Lowest:</b> {_fmt(summary['quality_min'], 'd')}% | "
        f"<b>Average rep time:</b> {_fmt(summary['duration_avg'], '.2f')}s</p>",
        f"<p><b>Good reps (quality &ge; {GOOD_QUALITY}):</b> {summary['good_reps']}</p>",
        f"<p><b>Same-leg repeats:</b> {summary['alternation_warnings']}</p>",
        "<p><b>Tips:</b> " + html.escape(" ".join(_tips(summary))) + "</p>",
        "<h2>Per-rep metrics</h2>",
        "<table border='1'><tr><th>Rep</th><th>Leg</th><th>Quality (%)</th><th>Duration (s)</th></tr>",
    ]
    for r in reps:
        report_lines.append(
            f"<tr><td>{r.get('rep', '')}</td>"
            f"<td>{html.escape(str(r.get('leg', '--')))}</td>"
            f"<td>{r.get('quality', '--')}</td>"
            f"<td>{_fmt(r.get('duration_sec'), '.2f')}</td></tr>"
        )
    report_lines.append("</table></body></html>")

    report_path = os.path.join(output_dir, "report.html")
    with open(report_path, "w") as f:
        f.write("\n".join(report_lines))

    if reps:
        try:
            _plot_reps(reps, output_dir)
        except Exception as e:
            logger.warning("could not write rep plots: %s", e)
    return report_path


def _plot_reps(reps: list[dict[str, Any]], output_dir: str) -> None:
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    qualities = [r.get("quality") for r in reps if r.get("quality") is not None]
    durations = [r.get("duration_sec") for r in reps if r.get("duration_sec") is not None]
    if qualities:
        colors = ["tab:blue" if r.get("leg") == "left" else "tab:orange" for r in reps if r.get("quality") is not None]
        plt.figure(figsize=(6, 4))
        plt.bar(range(1, len(qualities) + 1), qualities, color=colors)
        plt.ylim(0, 100)
        plt.xlabel("Rep")
        plt.ylabel("Quality (%)")
        plt.title("Quality by rep (blue = left, orange = right)")
        plt.savefig(os.path.join(output_dir, "quality_by_rep.png"), dpi=100)
        plt.close()
    if durations:
        plt.figure(figsize=(6, 4))
        plt.plot(range(1, len(durations) + 1), durations, "o-")
        plt.xlabel("Rep")
        plt.ylabel("Duration (s)")
        plt.title("Time in lunge by rep")
        plt.savefig(os.path.join(output_dir, "duration_by_rep.png"), dpi=100)
        plt.close()


def write_session_metrics(summary: dict[str, Any], path: str, **extra: Any) -> str:
    """Dump LungeRepCounter.session_summary() (plus extra fields) as JSON."""
    payload = dict(summary)
    payload.update(extra)
    with open(path, "w") as f:
        json.dump(payload, f, indent=2)
    return path
