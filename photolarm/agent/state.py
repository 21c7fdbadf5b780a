from typing import Any, Dict, List, Optional, TypedDict


class ScheduleState(TypedDict, total=False):
    # identity (plan_id doubles as LangGraph thread_id)
    plan_id: str

    # inputs (JSON-ready dicts of the pydantic models)
    plan: Dict[str, Any]
    preferences: Dict[str, Any]
    anchor: Optional[Dict[str, Any]]
    current_time: str

    # outputs
    schedule: Dict[str, Any]
    actions: List[Dict[str, Any]]  # proposed tool actions
    approval: Dict[str, Any]       # resume payload from the user
    executed: Dict[str, Any]       # tool results by action type
    audit: List[Dict[str, Any]]
    next_step: str
