"""
Evaluation matrix: runners × cases × evaluators, repeated num_runs times.

Execution is strictly sequential: one runner call, then every evaluator on
its response, then the next repetition, case and runner. Any exception from
a runner or an evaluator aborts the run and nothing is written, so a report
on disk is always a complete report.

Each completed run writes <timestamp>-<name>.json into the history folder
and overwrites last.txt with that file name. Two matrices writing to the
same history folder at the same time is not supported.

Usage:
    matrix = EvalMatrix(
        MatrixConfig(name="Baseline", history_folder="eval_history", num_runs=3),
        runners=[Runner("claude", claude_call)],
        evaluators=[NamedEvaluator("validation", ValidationEvaluator(services))],
        cases=load_cases_file("references/cases/domainmodel_cases.yaml"),
    )
    results = asyncio.run(matrix.run())
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

import yaml

from eval_case import EvalCase, Message, decode_eval_cases, load_cases_file
from evaluator import Evaluator, EvaluatorResult, Report, extract_code_block
from paths import HISTORY_DIR, LAST_REPORT_POINTER, PROJECT_ROOT

logger = logging.getLogger(__name__)


class DuplicateRunnerError(ValueError):
    """Two runners in one matrix share a name."""


class MatrixState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class MatrixConfig:
    name: str
    description: str = ""
    # where to store run history
    history_folder: str = str(HISTORY_DIR)
    # every evaluator is run again for each repetition
    num_runs: int = 1

    def __post_init__(self):
        if self.num_runs < 1:
            raise ValueError(f"num_runs must be at least 1, got {self.num_runs}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "history_folder": self.history_folder,
            "num_runs": self.num_runs,
        }


@dataclass
class Runner:
    """Turns a prompt plus history into a response (a model, a service, ...)."""
    name: str
    run: Callable[[str, list[Message]], Awaitable[str]]


@dataclass
class NamedEvaluator:
    name: str
    evaluator: Evaluator


def report_filename(name: str, timestamp: str) -> str:
    """File name for a report: sanitized timestamp plus lower-cased, hyphenated name."""
    sanitized_date = timestamp.replace(":", "-").replace(".", "-")
    slug = re.sub(r"\s+", "-", name.lower())
    file_name = f"{sanitized_date}-{slug}.json"
    return file_name.replace("/", "-")


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def write_report(history_folder: str | Path, report: Report, name: str) -> Path:
    """Write a report and point last.txt at it. Returns the report path."""
    folder = Path(history_folder)
    folder.mkdir(parents=True, exist_ok=True)
    file_name = report_filename(name, _iso_now())
    path = folder / file_name
    logger.info("Writing results to file: %s", path)
    path.write_text(json.dumps(report.to_dict(), indent=2, default=str), encoding="utf-8")
    (folder / LAST_REPORT_POINTER).write_text(file_name, encoding="utf-8")
    return path


class EvalMatrix:
    """Runs every runner on every case and scores each response with every evaluator."""

    def __init__(
        self,
        config: MatrixConfig,
        runners: list[Runner],
        evaluators: list[NamedEvaluator],
        cases: list[EvalCase],
    ):
        self.config = config
        self.runners = list(runners)
        self.evaluators = list(evaluators)
        self.cases = list(cases)
        self.state = MatrixState.IDLE
        self.report_path: Path | None = None

    def check_runner_names(self) -> None:
        seen: set[str] = set()
        for runner in self.runners:
            if runner.name in seen:
                raise DuplicateRunnerError(f"Runner names must be unique, found duplicate: {runner.name}")
            seen.add(runner.name)

    async def run(self) -> list[EvaluatorResult]:
        """Run the whole matrix and persist the report. Returns all raw results."""
        self.check_runner_names()
        self.state = MatrixState.RUNNING
        try:
            results = await self._run_all()
        except Exception:
            self.state = MatrixState.FAILED
            raise
        self.state = MatrixState.COMPLETED
        return results

    async def _run_all(self) -> list[EvaluatorResult]:
        start_date = _iso_now()
        start = time.perf_counter()
        results: list[EvaluatorResult] = []

        logger.info("Running evaluation matrix: %s", self.config.name)
        logger.info(
            "Found %d runner-evaluator-case combinations to handle",
            len(self.runners) * len(self.cases) * len(self.evaluators),
        )

        for runner in self.runners:
            logger.info("* Runner: %s", runner.name)
            for case in self.cases:
                logger.info("  * Case: %s", case.name)
                for iteration in range(1, self.config.num_runs + 1):
                    results.extend(await self._run_once(runner, case, iteration))

        run_time = time.perf_counter() - start
        logger.info("Evaluation matrix completed in %.2f seconds (%.2f minutes)", run_time, run_time / 60)

        report = Report(
            config=self.config.to_dict(),
            date=start_date,
            run_time=f"{run_time}s",
            results=results,
        )
        self.report_path = write_report(self.config.history_folder, report, self.config.name)
        return results

    async def _run_once(self, runner: Runner, case: EvalCase, iteration: int) -> list[EvaluatorResult]:
        runner_start = time.perf_counter()
        response = await runner.run(case.prompt, list(case.history))
        runner_duration = time.perf_counter() - runner_start

        scored = extract_code_block(response) if case.only_check_codeblocks else response

        results = []
        for named in self.evaluators:
            logger.info("    * Evaluator: %s (run %d)", named.name, iteration)
            eval_start = time.perf_counter()
            result = await named.evaluator.evaluate(scored, case.expected_response)
            duration = time.perf_counter() - eval_start

            if not result.name:
                result.name = f"{runner.name} - {case.name} - {named.name}"
            result.data["_runtime"] = duration
            result.metadata.update({
                "runner": runner.name,
                "evaluator": named.name,
                "testCase": case.snapshot(),
                "actual_response": response,
                "duration": duration,
                "runner_duration": runner_duration,
                "run_count": iteration,
            })
            results.append(result)
        return results


# ============================================================
# YAML matrix documents
# ============================================================

@dataclass
class MatrixDocument:
    """A matrix definition loaded from YAML; runners and evaluators stay as specs."""
    config: MatrixConfig
    cases: list[EvalCase]
    runners: list[dict[str, Any]] = field(default_factory=list)
    evaluators: list[str] = field(default_factory=list)


def load_matrix_config(path: str | Path) -> MatrixDocument:
    """Load and validate a matrix YAML document.

    Relative cases_file and history_folder paths resolve against the project root.

    Raises:
        FileNotFoundError: If the document or its cases file doesn't exist.
        ValueError: If the document is malformed.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or not isinstance(raw.get("config"), dict):
        raise ValueError(f"Matrix config must have a 'config' section: {path}")
    cfg = raw["config"]
    if not isinstance(cfg.get("name"), str):
        raise ValueError(f"Matrix config 'name' must be a string: {path}")

    history = Path(cfg.get("history_folder", HISTORY_DIR))
    if not history.is_absolute():
        history = PROJECT_ROOT / history
    config = MatrixConfig(
        name=cfg["name"],
        description=cfg.get("description", ""),
        history_folder=str(history),
        num_runs=int(cfg.get("num_runs", 1)),
    )

    if "cases_file" in raw:
        cases_path = Path(raw["cases_file"])
        if not cases_path.is_absolute():
            cases_path = PROJECT_ROOT / cases_path
        cases = load_cases_file(cases_path)
    elif "cases" in raw:
        cases = decode_eval_cases({"eval_cases": raw["cases"]})
    else:
        raise ValueError(f"Matrix config needs 'cases_file' or 'cases': {path}")

    runners = raw.get("runners", [])
    if not isinstance(runners, list) or not all(isinstance(r, dict) and "name" in r for r in runners):
        raise ValueError(f"Matrix config 'runners' must be a list of mappings with a name: {path}")

    return MatrixDocument(
        config=config,
        cases=cases,
        runners=runners,
        evaluators=list(raw.get("evaluators", [])),
    )
