# photolarm/api/routes_schedules.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from langgraph.types import Command

from photolarm.agent.graph import get_schedule_graph
from photolarm.schemas.models import (
    ApproveRequest,
    ApproveResponse,
    GenerateScheduleRequest,
    RecommendAnchorRequest,
    Schedule,
    SchedulePlanRequest,
    SchedulePlanResponse,
    ToolResult,
    UserPreferences,
)
from photolarm.services.anchor_recommender import rank_anchors, recommend_anchor
from photolarm.services.preferences import PreferencesService, get_preferences_service
from photolarm.services.schedule_book import ScheduleBook, get_schedule_book
from photolarm.services.schedule_generator import generate_fixed_schedule, generate_flexible_schedule
from photolarm.services.security import verify_internal_service
from photolarm.utils.clock import parse_iso, utc_now

router = APIRouter(prefix="/schedules", tags=["schedules"])


def _config(plan_id: str):
    return {"configurable": {"thread_id": plan_id}}


def _pending_interrupt_type(snap):
    interrupts = getattr(snap, "interrupts", None) or ()
    if not interrupts:
        return None
    payload = interrupts[-1].value
    return payload.get("type") if isinstance(payload, dict) else None


def _preferences(given: Optional[UserPreferences], service: PreferencesService) -> UserPreferences:
    return given if given is not None else service.preferences


@router.post("/generate", response_model=Schedule)
def generate(
    req: GenerateScheduleRequest,
    prefs: PreferencesService = Depends(get_preferences_service),
):
    now = parse_iso(req.current_time) if req.current_time else utc_now()
    preferences = _preferences(req.preferences, prefs)
    try:
        if req.plan.mode == "fixed":
            return generate_fixed_schedule(req.plan, now=now)
        anchor = req.anchor if req.anchor is not None else recommend_anchor(req.plan, preferences, now)
        return generate_flexible_schedule(req.plan, anchor, preferences, now=now)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/recommend-anchor")
def recommend(
    req: RecommendAnchorRequest,
    prefs: PreferencesService = Depends(get_preferences_service),
):
    now = parse_iso(req.current_time) if req.current_time else utc_now()
    try:
        ranked = rank_anchors(req.plan, _preferences(req.preferences, prefs), now)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "anchor": ranked[0][0],
        "candidates": [{"anchor": anchor, "score": score} for anchor, score in ranked],
    }


@router.post("/plan", response_model=SchedulePlanResponse)
def schedule_plan(
    req: SchedulePlanRequest,
    graph=Depends(get_schedule_graph),
    prefs: PreferencesService = Depends(get_preferences_service),
):
    plan_id = req.plan.id
    if graph.get_state(_config(plan_id)).values:
        raise HTTPException(status_code=409, detail=f"plan_id {plan_id} already has a schedule workflow")

    initial_state = {
        "plan_id": plan_id,
        "plan": req.plan.model_dump(mode="json"),
        "preferences": _preferences(req.preferences, prefs).model_dump(mode="json"),
        "anchor": req.anchor.model_dump(mode="json") if req.anchor else None,
        "audit": [],
    }
    if req.current_time:
        initial_state["current_time"] = req.current_time

    try:
        result = graph.invoke(initial_state, config=_config(plan_id))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    schedule = result.get("schedule")
    if not schedule:
        raise HTTPException(status_code=500, detail="Schedule missing from graph state.")

    return SchedulePlanResponse(
        plan_id=plan_id,
        schedule=Schedule.model_validate(schedule),
        anchor=result.get("anchor"),
        next_step="NEED_APPROVAL" if "__interrupt__" in result else result.get("next_step"),
    )


@router.post("/approve", response_model=ApproveResponse)
def approve(
    req: ApproveRequest,
    _=Depends(verify_internal_service),
    graph=Depends(get_schedule_graph),
    book: ScheduleBook = Depends(get_schedule_book),
):
    if not req.approved_action_types:
        raise HTTPException(status_code=400, detail="Select at least one action to approve.")

    snap = graph.get_state(_config(req.plan_id))
    if not snap.values:
        raise HTTPException(status_code=404, detail="plan_id not found")

    itype = _pending_interrupt_type(snap)
    if itype != "APPROVAL_REQUIRED":
        raise HTTPException(status_code=409, detail=f"Plan not waiting for approval. interrupt_type={itype}")

    resume_payload = {
        "approved_action_types": req.approved_action_types,
        "edits": (req.edits.model_dump() if req.edits else {}),
    }
    final_state = graph.invoke(Command(resume=resume_payload), config=_config(req.plan_id))

    schedule = Schedule.model_validate(final_state["schedule"])
    book.add_schedule(schedule)

    executed_raw = final_state.get("executed", {}) or {}
    executed = {k: ToolResult(**v) for k, v in executed_raw.items()}
    return ApproveResponse(schedule=schedule, executed=executed, next_step="DONE")


@router.get("/audit")
def audit(plan_id: str, graph=Depends(get_schedule_graph)):
    snap = graph.get_state(_config(plan_id))
    if not snap.values:
        raise HTTPException(status_code=404, detail="plan_id not found")
    return {
        "plan_id": plan_id,
        "interrupt_type": _pending_interrupt_type(snap),
        "audit": snap.values.get("audit", []),
    }
