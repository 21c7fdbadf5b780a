# photolarm/api/routes_preferences.py
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from photolarm.schemas.models import UserPreferences
from photolarm.services.preferences import PreferencesService, get_preferences_service

router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.get("", response_model=UserPreferences)
def read_preferences(prefs: PreferencesService = Depends(get_preferences_service)):
    return prefs.preferences


@router.put("", response_model=UserPreferences)
def replace_preferences(req: UserPreferences, prefs: PreferencesService = Depends(get_preferences_service)):
    return prefs.replace(req)


@router.patch("", response_model=UserPreferences)
def update_preferences(changes: Dict[str, Any], prefs: PreferencesService = Depends(get_preferences_service)):
    try:
        return prefs.update(**changes)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/reset", response_model=UserPreferences)
def reset_preferences(prefs: PreferencesService = Depends(get_preferences_service)):
    return prefs.reset_to_defaults()
