"""
Evaluation harness -- runs eval_questions.jsonl through the compiler
and generates analytics/reports/eval_report.md.

Checks:
  - Department correctness  (explicit override or inferred)
  - Date-range correctness  (kind of the recognised window)
  - Aggregation correctness
  - Limit correctness
  - Pattern trail           (exact, ordered)
  - Parameter parity        (placeholders == parameters)
  - Latency                 (per-question ms)
"""
from __future__ import annotations

import json
import sys
import time
import datetime
from pathlib import Path
from typing import Any

EVAL_PATH = Path(__file__).resolve().parent / "eval_questions.jsonl"
CATALOG_PATH = Path(__file__).resolve().parent / "catalog.json"
REPORT_PATH = Path(__file__).resolve().parents[1] / "reports" / "eval_report.md"


def _load_questions() -> list[dict[str, Any]]:
    lines = EVAL_PATH.read_text().splitlines()
    return [json.loads(line) for line in lines if line.strip()]


def _load_catalog() -> dict[str, Any]:
    return json.loads(CATALOG_PATH.read_text())


def _run_one(q: dict[str, Any], catalog: dict[str, Any]) -> dict[str, Any]:
    """Compile a single question and compare it against its expectations."""
    from src.compiler.service import compile_query
    from src.core.errors import CompilerError
    from src.governance.sql_safety import count_placeholders

    question = q["question"]
    t0 = time.perf_counter()
    try:
        result = compile_query(
            question,
            catalog,
            department=q.get("department"),
            date_range=q.get("date_range"),
        )
    except CompilerError as exc:
        return {
            "question": question,
            "error": str(exc),
            "latency_ms": int((time.perf_counter() - t0) * 1000),
            "department_ok": False,
            "date_ok": False,
            "aggregation_ok": False,
            "limit_ok": False,
            "patterns_ok": False,
            "parity_ok": False,
            "success": False,
            "generated_sql": "",
            "patterns": [],
        }
    latency = int((time.perf_counter() - t0) * 1000)

    checks = {
        "department_ok": result.department_filter == q.get("expected_department"),
        "date_ok": result.date_filter == q.get("expected_date", "none"),
        "aggregation_ok": result.aggregation_type == q.get("expected_aggregation", "none"),
        "limit_ok": result.limit == q.get("expected_limit", 0),
        "patterns_ok": result.matched_patterns == q.get("expected_patterns", result.matched_patterns),
        "parity_ok": count_placeholders(result.sql, result.param_style) == len(result.parameters),
    }

    return {
        "question": question,
        "error": None,
        "latency_ms": latency,
        **checks,
        "success": all(checks.values()),
        "generated_sql": result.sql,
        "patterns": result.matched_patterns,
    }


def _rate(results: list[dict[str, Any]], key: str) -> tuple[int, float]:
    n = sum(1 for r in results if r[key])
    return n, (n / len(results) * 100) if results else 0.0


def _generate_report(results: list[dict[str, Any]]) -> str:
    """Generate the Markdown eval report."""
    total = len(results)
    now = datetime.datetime.now().strftime("%Y-%m-%d %H:%M")

    latencies = sorted(r["latency_ms"] for r in results)
    avg_lat = sum(latencies) / len(latencies) if latencies else 0
    p95_idx = min(int(len(latencies) * 0.95), len(latencies) - 1) if latencies else 0
    p95_lat = latencies[p95_idx] if latencies else 0

    lines: list[str] = []
    lines.append("# Compiler Evaluation Report")
    lines.append("")
    lines.append(f"> Generated: {now}  |  Questions: **{total}**")
    lines.append("")
    lines.append("## Summary")
    lines.append("")
    lines.append("| Check | Value |")
    lines.append("|-------|-------|")
    for label, key in (
        ("Overall success", "success"),
        ("Department", "department_ok"),
        ("Date range", "date_ok"),
        ("Aggregation", "aggregation_ok"),
        ("Limit", "limit_ok"),
        ("Pattern trail", "patterns_ok"),
        ("Parameter parity", "parity_ok"),
    ):
        n, pct = _rate(results, key)
        lines.append(f"| {label} | **{pct:.0f}%** ({n}/{total}) |")
    lines.append("")
    lines.append(f"Latency: mean {avg_lat:.1f} ms, p95 {p95_lat} ms.")
    lines.append("")

    example = next((r for r in results if r["generated_sql"] and r["patterns"] != ["basic_selection"]), None)
    if example:
        lines.append("## Example SQL")
        lines.append("")
        lines.append(f"**Question:** *\"{example['question']}\"*")
        lines.append("")
        lines.append("```sql")
        lines.append(example["generated_sql"])
        lines.append("```")
        lines.append("")

    lines.append("## Per-Question Results")
    lines.append("")
    lines.append("| # | Question | Dept | Date | Agg | Limit | Patterns | Parity | Pass |")
    lines.append("|---|----------|------|------|-----|-------|----------|--------|------|")
    for i, r in enumerate(results, 1):
        flags = [
            "OK" if r[k] else "ERROR"
            for k in ("department_ok", "date_ok", "aggregation_ok", "limit_ok", "patterns_ok", "parity_ok", "success")
        ]
        qtext = r["question"][:55] + ("..." if len(r["question"]) > 55 else "")
        lines.append(f"| {i} | {qtext} | " + " | ".join(flags) + " |")
    lines.append("")

    failures = [(i, r) for i, r in enumerate(results, 1) if not r["success"]]
    lines.append("## Failures")
    lines.append("")
    if not failures:
        lines.append("None -- all questions compiled as expected.")
    for i, r in failures:
        lines.append(f"### #{i}: {r['question']}")
        lines.append("")
        if r.get("error"):
            lines.append(f"**Error:** `{r['error']}`")
        lines.append(f"**Patterns:** {r['patterns']}")
        lines.append("")

    return "\n".join(lines)


def run() -> int:
    # Ensure UTF-8 output on Windows
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")  # type: ignore[attr-defined]

    questions = _load_questions()
    catalog = _load_catalog()
    print(f"Loaded {len(questions)} eval questions.")

    results = []
    for i, q in enumerate(questions, 1):
        r = _run_one(q, catalog)
        status = "PASS" if r["success"] else "FAIL"
        print(f"  [{i:2d}/{len(questions)}] {status}  {r['question'][:60]:<60}  {r['latency_ms']:>4d}ms")
        results.append(r)

    REPORT_PATH.parent.mkdir(parents=True, exist_ok=True)
    REPORT_PATH.write_text(_generate_report(results), encoding="utf-8")
    print(f"\nReport written to {REPORT_PATH}")

    successes = sum(1 for r in results if r["success"])
    print(f"\n  Success: {successes}/{len(results)}")
    return 0 if successes == len(results) else 1


if __name__ == "__main__":
    sys.exit(run())
