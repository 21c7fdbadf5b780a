# photolarm/agent/nodes.py
from typing import Any, Dict, List

from langgraph.types import interrupt
from loguru import logger

from photolarm.agent.state import ScheduleState
from photolarm.schemas.models import Anchor, Plan, Schedule, UserPreferences
from photolarm.services.anchor_recommender import recommend_anchor
from photolarm.services.schedule_generator import generate_fixed_schedule, generate_flexible_schedule
from photolarm.services.tools import execute_action
from photolarm.utils.clock import parse_iso, to_iso, utc_now


def _audit(state: ScheduleState, event: str, extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    audit = list(state.get("audit") or [])
    audit.append({"event": event, **(extra or {})})
    return {"audit": audit}


def _preferences(state: ScheduleState) -> UserPreferences:
    return UserPreferences.model_validate(state.get("preferences") or {})


def anchor_node(state: ScheduleState) -> Dict[str, Any]:
    current_time = state.get("current_time") or to_iso(utc_now())
    plan = Plan.model_validate(state["plan"])

    if plan.mode != "flexible":
        return {"current_time": current_time, **_audit(state, "anchor.skip", {"reason": "fixed plan"})}

    if state.get("anchor"):
        return {"current_time": current_time, **_audit(state, "anchor.skip", {"reason": "anchor provided"})}

    anchor = recommend_anchor(plan, _preferences(state), parse_iso(current_time))
    return {
        "current_time": current_time,
        "anchor": anchor.model_dump(mode="json"),
        **_audit(state, "anchor.recommended", {"type": anchor.type, "datetime": anchor.datetime}),
    }


def generate_node(state: ScheduleState) -> Dict[str, Any]:
    plan = Plan.model_validate(state["plan"])
    now = parse_iso(state["current_time"])

    if plan.mode == "fixed":
        schedule = generate_fixed_schedule(plan, now=now)
    else:
        anchor = Anchor.model_validate(state["anchor"])
        schedule = generate_flexible_schedule(plan, anchor, _preferences(state), now=now)

    actions = [{"type": "CREATE_ALARMS", "payload": {"schedule_id": schedule.id}}]
    out: Dict[str, Any] = {
        "schedule": schedule.model_dump(mode="json"),
        "actions": actions,
        "next_step": "NEED_APPROVAL",
    }
    out.update(_audit(state, "generate.done", {"alarm_count": len(schedule.alarms)}))
    return out


def approval_node(state: ScheduleState) -> Dict[str, Any]:
    payload = {
        "type": "APPROVAL_REQUIRED",
        "plan_id": state["plan_id"],
        "schedule": state["schedule"],
        "actions": state.get("actions", []),
        "instructions": "Review alarms, optionally move or disable some, then approve actions.",
    }

    resume_value = interrupt(payload)
    return {"approval": resume_value, **_audit(state, "approval.resumed")}


def execute_node(state: ScheduleState) -> Dict[str, Any]:
    schedule = Schedule.model_validate(state["schedule"])
    approval = state.get("approval") or {}
    approved_action_types: List[str] = approval.get("approved_action_types", [])
    edits = approval.get("edits", {}) or {}
    overrides: Dict[str, str] = edits.get("alarm_time_overrides", {}) or {}
    disabled = set(edits.get("disabled_alarm_ids", []) or [])

    # apply edits
    edited = 0
    for alarm in schedule.alarms:
        if alarm.id in overrides:
            alarm.metadata.setdefault("original_datetime", alarm.datetime)
            alarm.datetime = to_iso(parse_iso(overrides[alarm.id]))
            alarm.metadata["edited"] = True
            edited += 1
        if alarm.id in disabled:
            alarm.enabled = False
            edited += 1

    if edited:
        schedule.alarms.sort(key=lambda a: parse_iso(a.datetime))
        schedule.updated_at = to_iso(utc_now())

    executed: Dict[str, Any] = {}
    for action in state.get("actions", []):
        a_type = action["type"]
        if a_type not in approved_action_types:
            continue
        executed[a_type] = execute_action(a_type, schedule, action.get("payload", {})).model_dump()

    logger.info(f"[agent] plan {state['plan_id']}: {edited} edits, executed {list(executed.keys())}")
    return {
        "schedule": schedule.model_dump(mode="json"),
        "executed": executed,
        "next_step": "DONE",
        **_audit(state, "execute.done", {"executed": list(executed.keys()), "edits": edited}),
    }
