import datetime
import uuid

from fastapi import APIRouter, Depends, HTTPException

from controllers.analytics import charting_stats
from core.auth import JWTBearer, get_current_user, roles_required, token_required
from database.database import get_db
from models.charting_progress import ChartingProgress
from models.enums import Role
from schema.charting import ChartingUpdateRequest
from utils.serialize import row_to_dict
from utils.state import State

router = APIRouter()


@router.get("/me")
@token_required
@roles_required(Role.STUDENT)
async def get_my_progress(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = get_current_user(dependencies, db)
        progress = user.charting_progress
        if progress is None:
            return {
                "progress": {
                    "user_id": user.user_id,
                    "charting_count": 0,
                    "diagnosis_total_count": 0,
                }
            }
        return {"progress": row_to_dict(progress)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching charting progress: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while fetching charting progress: {str(e)}",
        )


@router.put("/me")
@token_required
@roles_required(Role.STUDENT)
async def save_my_progress(
    req: ChartingUpdateRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = get_current_user(dependencies, db)
        timestamp = datetime.datetime.now(datetime.UTC).isoformat()
        progress = user.charting_progress
        if progress is None:
            progress = ChartingProgress(
                id=str(uuid.uuid4()), user_id=user.user_id, time_created=timestamp
            )
            db.add(progress)
        progress.charting_count = req.charting_count
        progress.diagnosis_total_count = req.diagnosis_total_count
        progress.time_updated = timestamp
        db.commit()
        db.refresh(progress)
        return {"progress": row_to_dict(progress)}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        State.logger.error(f"An error occured while saving charting progress: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while saving charting progress: {str(e)}",
        )


@router.get("/stats")
@token_required
@roles_required(Role.ADMIN)
async def get_charting_stats(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        return charting_stats(db)
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching charting stats: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while fetching charting stats: {str(e)}",
        )
