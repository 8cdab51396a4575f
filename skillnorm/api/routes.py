# skillnorm/api/routes.py
import json

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from skillnorm.db.models import Skill, SkillJob
from skillnorm.db.session import get_db
from skillnorm.llm.usage import summarize_ledger
from skillnorm.schemas.skills import SkillOut

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/skills", response_model=list[SkillOut], tags=["skills"])
def list_skills(limit: int = Query(100, ge=1, le=1000), db: Session = Depends(get_db)):
    """Canonical skills, most referenced first."""
    rows = db.execute(
        select(Skill).order_by(Skill.total_references.desc(), Skill.id).limit(limit)
    ).scalars().all()
    return rows


@router.get("/skills/{skill_id}/jobs", tags=["skills"])
def skill_jobs(skill_id: int, db: Session = Depends(get_db)):
    skill = db.get(Skill, skill_id)
    if skill is None:
        raise HTTPException(status_code=404, detail="Skill not found")
    pids = db.execute(
        select(SkillJob.processing_id).where(SkillJob.skill_id == skill_id).order_by(SkillJob.processing_id)
    ).scalars().all()
    return {"skill_id": skill.id, "skill_name": skill.skill_name, "processing_ids": list(pids)}


@router.get("/jobs/{processing_id}/skills", response_model=list[SkillOut], tags=["skills"])
def job_skills(processing_id: str, db: Session = Depends(get_db)):
    rows = db.execute(
        select(Skill)
        .join(SkillJob, SkillJob.skill_id == Skill.id)
        .where(SkillJob.processing_id == processing_id)
        .order_by(Skill.skill_name)
    ).scalars().all()
    if not rows:
        raise HTTPException(status_code=404, detail="No skills linked to this job")
    return rows


@router.get("/usage", tags=["usage"])
def usage(db: Session = Depends(get_db)):
    df = summarize_ledger(db)
    return {
        "items": json.loads(df.to_json(orient="records")),
        "total_cost_usd": float(df["total_cost_usd"].sum()) if not df.empty else 0.0,
    }
