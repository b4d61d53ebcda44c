"""
Tutor API Router.

Session driver for the adaptive tutoring loop:
- Session setup (returns the first concept to quiz)
- Query submission: grade the learner's result, step the environment, train
- Current action and state lookup, reset and end of a session

Grading happens here, before the core is called: an attempt whose
correctness cannot be decided never reaches the environment.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel, Field

from src.agent.orchestrator import TrainingOrchestrator
from src.core.exceptions import (
    ConfigurationError,
    InvalidActionError,
    NotInitializedError,
    SessionNotFoundError,
)
from src.practice.catalog import ConceptCatalog
from src.practice.query_runner import PracticeDatabase
from src.practice.result_compare import compare_rows

router = APIRouter()


# ========================================
# Dependencies
# ========================================


def get_orchestrator(request: Request) -> TrainingOrchestrator:
    return request.app.state.orchestrator


def get_catalog(request: Request) -> ConceptCatalog | None:
    return request.app.state.catalog


def get_database(request: Request) -> PracticeDatabase:
    return request.app.state.practice_db


def get_num_concepts(request: Request) -> int:
    return request.app.state.num_concepts


# ========================================
# Request/Response Models
# ========================================


class SetupRequest(BaseModel):
    """Request model for starting a tutoring session."""

    theme: str | None = Field(None, description="Game theme chosen by the learner")
    schema_name: str | None = Field(None, alias="schema", description="Practice schema name")
    concepts: list[str] | None = Field(None, description="Concepts the learner wants to practise")
    session_id: str | None = Field(None, description="Reuse this session id (restarts it)")

    model_config = {"populate_by_name": True}


class PracticeItemResponse(BaseModel):
    """Prompt shown to the learner for a concept."""

    concept: str
    prompt: str


class SetupResponse(BaseModel):
    """Response model for session setup."""

    session_id: str
    action: int
    num_concepts: int
    item: PracticeItemResponse | None


class SubmitQueryRequest(BaseModel):
    """
    Request model for a learner submission.

    Exactly one grading source is used, in this order: `correct` (graded by
    the caller), `rows` (already executed result), `userQuery` (SQL run on
    the practice database).
    """

    session_id: str = Field(..., description="Session identifier")
    user_query: str | None = Field(None, alias="userQuery", description="Learner SQL")
    rows: list[list[Any]] | None = Field(None, description="Result rows of the learner's query")
    correct: bool | None = Field(None, description="Correctness decided by the caller")
    action: int | None = Field(None, description="Concept answered (defaults to the current one)")

    model_config = {"populate_by_name": True}


class SubmitQueryResponse(BaseModel):
    """Response model for a processed submission."""

    new_mastery: list[float] = Field(..., alias="newMastery")
    action: int
    reward: float
    correct: bool
    done: bool
    next_action: int
    next_item: PracticeItemResponse | None
    trained: bool
    query_error: str | None = None
    message: str = "Query processed"

    model_config = {"populate_by_name": True}


class ActionResponse(BaseModel):
    action: int
    item: PracticeItemResponse | None


class StateResponse(BaseModel):
    session_id: str
    mastery: list[float]
    done: bool
    action: int


# ========================================
# Helpers
# ========================================


def _item_response(catalog: ConceptCatalog | None, action: int) -> PracticeItemResponse | None:
    if catalog is None or action >= len(catalog):
        return None
    item = catalog.item(action)
    return PracticeItemResponse(concept=item.concept, prompt=item.prompt)


def _grade(
    request: SubmitQueryRequest,
    action: int,
    catalog: ConceptCatalog | None,
    database: PracticeDatabase,
) -> tuple[bool, str | None]:
    """Decide correctness of a submission; returns (correct, query_error)."""
    if request.correct is not None:
        return request.correct, None

    if request.rows is None and request.user_query is None:
        raise HTTPException(status_code=422, detail="Provide one of: correct, rows, userQuery")
    if catalog is None:
        raise HTTPException(
            status_code=400,
            detail="No concept catalogue for this concept count; submit a `correct` flag instead",
        )

    expected = catalog.expected_rows(action, database)
    if request.rows is not None:
        return compare_rows(request.rows, expected), None

    result = database.run_query(request.user_query)
    if not result.ok:
        return False, result.error
    return compare_rows(result.rows, expected), None


# ========================================
# Session Endpoints
# ========================================


@router.post("/setup-form", response_model=SetupResponse, summary="Start tutoring session")
def setup_session(
    request: SetupRequest,
    orchestrator: TrainingOrchestrator = Depends(get_orchestrator),
    catalog: ConceptCatalog | None = Depends(get_catalog),
    num_concepts: int = Depends(get_num_concepts),
) -> SetupResponse:
    """Create (or restart) a session and return the first concept to quiz."""
    logger.info(f"Received settings: theme={request.theme}, schema={request.schema_name}, concepts={request.concepts}")

    try:
        session = orchestrator.init_session(num_concepts, session_id=request.session_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("Failed to set up session")
        raise HTTPException(status_code=500, detail=str(exc))

    return SetupResponse(
        session_id=session.session_id,
        action=session.current_action,
        num_concepts=num_concepts,
        item=_item_response(catalog, session.current_action),
    )


@router.post("/submit-query", response_model=SubmitQueryResponse, summary="Submit learner query")
def submit_query(
    request: SubmitQueryRequest,
    orchestrator: TrainingOrchestrator = Depends(get_orchestrator),
    catalog: ConceptCatalog | None = Depends(get_catalog),
    database: PracticeDatabase = Depends(get_database),
) -> SubmitQueryResponse:
    """
    Grade a submission and advance the session.

    This is the core adaptive loop: grade -> environment step -> replay ->
    mini-batch update -> next concept.
    """
    try:
        session = orchestrator.get_session(request.session_id)
        action = session.current_action if request.action is None else request.action
        session.environment.validate_action(action)

        correct, query_error = _grade(request, action, catalog, database)
        result = orchestrator.process_attempt(request.session_id, action, correct)
    except HTTPException:
        raise
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except (InvalidActionError, NotInitializedError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception(f"Failed to process submission for session {request.session_id}")
        raise HTTPException(status_code=500, detail=str(exc))

    return SubmitQueryResponse(
        new_mastery=result.mastery,
        action=result.action,
        reward=result.reward,
        correct=result.correct,
        done=result.done,
        next_action=result.next_action,
        next_item=_item_response(catalog, result.next_action),
        trained=result.trained,
        query_error=query_error,
    )


@router.get("/api/getAction", response_model=ActionResponse, summary="Current concept")
def get_action(
    session_id: str = Query(..., description="Session identifier"),
    orchestrator: TrainingOrchestrator = Depends(get_orchestrator),
    catalog: ConceptCatalog | None = Depends(get_catalog),
) -> ActionResponse:
    """Concept the agent wants to quiz next for this session."""
    try:
        action = orchestrator.get_current_action(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return ActionResponse(action=action, item=_item_response(catalog, action))


@router.get("/sessions/{session_id}/state", response_model=StateResponse, summary="Session state")
def get_state(
    session_id: str,
    orchestrator: TrainingOrchestrator = Depends(get_orchestrator),
) -> StateResponse:
    try:
        state = orchestrator.get_state(session_id)
        action = orchestrator.get_current_action(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return StateResponse(session_id=session_id, mastery=state.as_list(), done=state.done, action=action)


@router.post("/sessions/{session_id}/reset", response_model=StateResponse, summary="Reset session")
def reset_session(
    session_id: str,
    orchestrator: TrainingOrchestrator = Depends(get_orchestrator),
) -> StateResponse:
    try:
        state = orchestrator.reset_session(session_id)
        action = orchestrator.get_current_action(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return StateResponse(session_id=session_id, mastery=state.as_list(), done=state.done, action=action)


@router.delete("/sessions/{session_id}", summary="End session")
def end_session(
    session_id: str,
    orchestrator: TrainingOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    if not orchestrator.end_session(session_id):
        raise HTTPException(status_code=404, detail=f"Session {session_id!r} not found")
    return {"session_id": session_id, "status": "ended"}
