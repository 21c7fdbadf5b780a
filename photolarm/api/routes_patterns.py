# photolarm/api/routes_patterns.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from photolarm.schemas.models import (
    ImportPatternsRequest,
    LearnedMedicationPattern,
    LearningStats,
    MatchRequest,
    PatternMatch,
    ValidationRequest,
    ValidationResponse,
)
from photolarm.services.learning_store import LearningStore, get_learning_store
from photolarm.services.security import verify_internal_service

router = APIRouter(prefix="/patterns", tags=["patterns"])


@router.post("/validate", response_model=ValidationResponse)
def validate(req: ValidationRequest, store: LearningStore = Depends(get_learning_store)):
    store.save_validation(req.phrase, req.extracted, req.was_confirmed)
    return ValidationResponse(
        total_patterns=len(store.patterns),
        total_validations=store.metadata.total_validations,
    )


@router.post("/match", response_model=Optional[PatternMatch])
def match(req: MatchRequest, store: LearningStore = Depends(get_learning_store)):
    return store.find_match(req.phrase)


@router.get("/stats", response_model=LearningStats)
def stats(store: LearningStore = Depends(get_learning_store)):
    return store.get_stats()


@router.get("/reliable", response_model=List[LearnedMedicationPattern])
def reliable(limit: int = 10, store: LearningStore = Depends(get_learning_store)):
    return store.most_reliable_patterns(limit)


@router.get("/recent", response_model=List[LearnedMedicationPattern])
def recent(days: int = 7, store: LearningStore = Depends(get_learning_store)):
    return store.recent_validations(days)


@router.get("/export")
def export(store: LearningStore = Depends(get_learning_store)):
    return Response(content=store.export_patterns(), media_type="application/json")


@router.post("/import")
def import_patterns(
    req: ImportPatternsRequest,
    _=Depends(verify_internal_service),
    store: LearningStore = Depends(get_learning_store),
):
    if not store.import_patterns(req.payload):
        raise HTTPException(status_code=400, detail="Invalid patterns payload.")
    return {"ok": True, "total_patterns": len(store.patterns)}


@router.delete("/{pattern_id}")
def delete_pattern(pattern_id: str, store: LearningStore = Depends(get_learning_store)):
    if not store.delete_pattern(pattern_id):
        raise HTTPException(status_code=404, detail="pattern not found")
    return {"ok": True}


@router.delete("")
def clear_patterns(
    _=Depends(verify_internal_service),
    store: LearningStore = Depends(get_learning_store),
):
    store.clear_all_patterns()
    return {"ok": True}
