from fastapi import APIRouter, Depends, HTTPException, Query

from controllers.analytics import (
    all_student_stats,
    category_distribution,
    dashboard_stats,
    student_stats,
    sync_all_student_case_counts,
    sync_student_case_count,
)
from core.auth import JWTBearer, roles_required, token_required
from database.database import get_db
from models.enums import Role
from utils.state import State

router = APIRouter()


@router.get("/dashboard")
@token_required
@roles_required(Role.ADMIN)
async def get_dashboard(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        return dashboard_stats(db)
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while building dashboard stats: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while building dashboard stats: {str(e)}",
        )


@router.get("/categories")
@token_required
async def get_category_distribution(
    max_value: int = Query(2, ge=0, description="Largest bucket before the overflow bucket"),
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        return {"categories": category_distribution(db, max_value=max_value)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while building category distribution: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while building category distribution: {str(e)}",
        )


@router.get("/students")
@token_required
async def get_all_student_stats(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        return {"students": all_student_stats(db)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching student stats: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while fetching student stats: {str(e)}",
        )


@router.get("/students/{student_id}")
@token_required
async def get_student_stats(
    student_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        return {"student": student_stats(student_id, db)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching student stats: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while fetching student stats: {str(e)}",
        )


@router.post("/sync")
@token_required
@roles_required(Role.ADMIN)
async def sync_all_counts(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        synced = sync_all_student_case_counts(db)
        State.logger.info(f"Synced case counts for {synced} students")
        return {"synced": synced}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while syncing case counts: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while syncing case counts: {str(e)}",
        )


@router.post("/sync/{student_id}")
@token_required
@roles_required(Role.ADMIN)
async def sync_one_count(
    student_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        counts = sync_student_case_count(student_id, db)
        if counts is None:
            raise HTTPException(status_code=404, detail="Student not found")
        return {"student_id": student_id, "counts": counts}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while syncing case count: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while syncing case count: {str(e)}",
        )
