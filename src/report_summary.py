"""Text and Markdown renderings of runner-averaged matrix results."""

from __future__ import annotations

from evaluator import EvaluatorResult, average_across_runners, is_numeric


def metric_names(results: list[EvaluatorResult]) -> list[str]:
    """Numeric data keys across all results, in first-seen order."""
    names: list[str] = []
    for result in results:
        for key, value in result.data.items():
            if is_numeric(value) and key not in names:
                names.append(key)
    return names


def summary_table(results: list[EvaluatorResult]) -> str:
    """Format a human-readable per-runner table."""
    lines = ["Evaluation Summary (averaged per runner)", "=" * 60]
    averaged = average_across_runners(results)
    if not averaged:
        return "\n".join(lines + ["No results."])

    metrics = metric_names(averaged)
    for result in averaged:
        lines.append(f"{result.name}:")
        for metric in metrics:
            value = result.data.get(metric)
            shown = f"{value:.2f}" if is_numeric(value) else "-"
            lines.append(f"  {metric:30s} {shown}")
    return "\n".join(lines)


def export_markdown(results: list[EvaluatorResult]) -> str:
    """Render runner-averaged results as a Markdown table."""
    averaged = average_across_runners(results)
    lines = [
        "## Evaluation Summary",
        "",
        f"**Runners compared:** {len(averaged)}",
        "",
    ]
    if not averaged:
        return "\n".join(lines)

    metrics = metric_names(averaged)
    lines.append("| Runner | " + " | ".join(metrics) + " |")
    lines.append("|--------|" + "|".join("-" * (len(m) + 2) for m in metrics) + "|")
    for result in averaged:
        cells = []
        for metric in metrics:
            value = result.data.get(metric)
            cells.append(f"{value:.2f}" if is_numeric(value) else "-")
        lines.append(f"| {result.name} | " + " | ".join(cells) + " |")
    lines.append("")
    return "\n".join(lines)
