"""Centralized path resolution for dsl-evalkit.

All modules should import paths from here rather than computing them locally.
This module resolves paths relative to the project root (parent of src/).
"""

from __future__ import annotations

from pathlib import Path

# Project root: parent of the src/ directory
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Data and reference directories
REFERENCES_DIR = PROJECT_ROOT / "references"
GRAMMARS_DIR = REFERENCES_DIR / "grammars"
CASES_DIR = REFERENCES_DIR / "cases"
SAMPLES_DIR = REFERENCES_DIR / "samples"
CONFIGS_DIR = PROJECT_ROOT / "configs"
HISTORY_DIR = PROJECT_ROOT / "eval_history"

# Key reference files
DOMAINMODEL_GRAMMAR_PATH = GRAMMARS_DIR / "domainmodel.lark"
DOMAINMODEL_CASES_PATH = CASES_DIR / "domainmodel_cases.yaml"
DOMAINMODEL_SAMPLE_PATH = SAMPLES_DIR / "company.dmodel"
EXAMPLE_MATRIX_PATH = CONFIGS_DIR / "domainmodel_matrix.yaml"

# Pointer to the most recent report inside a history folder
LAST_REPORT_POINTER = "last.txt"
