#!/usr/bin/env python3
"""
dsl-evalkit HTTP server: evaluate and split DomainModel documents over REST.

Start with:
    python cli/server.py
    # API docs at http://localhost:8000/docs

Routes:
    GET  /health            → Health check
    GET  /capabilities      → Available evaluators
    POST /evaluate          → Score a response (validation + statistics by default)
    POST /split             → Split a document into chunks by node type
    POST /program-map       → Outline of a document
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

# Ensure src/ is importable
_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from domainmodel import create_domainmodel_services, outline_mapping_rules
from dsl_splitter import SplitterOptions, split_by_node
from evaluator_registry import EVALUATOR_NAMES, create_evaluator
from program_map import ProgramMapper

app = FastAPI(title="dsl-evalkit", version="0.1.0")

_services = create_domainmodel_services()

# ── Request Models ─────────────────────────────────────────────────────


class EvaluateRequest(BaseModel):
    response: str
    expected_response: str = ""
    evaluator: str = "analyzer"


class SplitRequest(BaseModel):
    document: str
    node_type: list[str] = ["entity"]
    include_comments: bool = True


class ProgramMapRequest(BaseModel):
    document: str


# ── Routes ─────────────────────────────────────────────────────────────


@app.get("/health")
async def health():
    return {"status": "ok", "service": "dsl-evalkit", "language": _services.name}


@app.get("/capabilities")
async def capabilities():
    return {"evaluators": list(EVALUATOR_NAMES), "file_extension": _services.file_extension}


@app.post("/evaluate")
async def evaluate(req: EvaluateRequest):
    """Score one response; the result is an EvaluatorResult dict."""
    try:
        evaluator = create_evaluator(req.evaluator, _services)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    result = await evaluator.evaluate(req.response, req.expected_response)
    return {"result": result.to_dict()}


@app.post("/split")
async def split(req: SplitRequest):
    if not req.node_type:
        raise HTTPException(status_code=400, detail="node_type must name at least one node type")
    options = SplitterOptions() if req.include_comments else SplitterOptions(comment_rule_names=None)
    chunks = split_by_node(
        req.document,
        [lambda n, t=t: n.type == t for t in req.node_type],
        _services,
        options,
    )
    return {"chunks": chunks}


@app.post("/program-map")
async def program_map(req: ProgramMapRequest):
    mapper = ProgramMapper(_services, outline_mapping_rules())
    return {"lines": mapper.map(req.document)}


# ── Startup ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    print(f"\n  dsl-evalkit server starting on http://localhost:{port}")
    print(f"  API docs at http://localhost:{port}/docs\n")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
