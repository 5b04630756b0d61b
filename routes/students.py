from fastapi import APIRouter, Depends, HTTPException, Query

from controllers.roster import (
    force_sync,
    hybrid_options,
    invalidate_cache,
    roster_stats,
    student_options,
    upload_roster,
    validate_registration,
)
from core.auth import JWTBearer, get_current_user, roles_required, token_required
from database.database import get_db
from models.enums import Role
from schema.students import RosterUploadRequest
from utils.serialize import student_brief
from utils.state import State

router = APIRouter()


@router.get("/options")
@token_required
async def get_student_options(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        return {"students": student_options(db)}
    except Exception as e:
        State.logger.error(f"An error occured while fetching student options: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while fetching student options: {str(e)}",
        )


@router.get("/hybrid")
@token_required
async def get_hybrid_options(
    only_registered: bool = Query(False, description="Drop students who have not signed up"),
    include_self: bool = Query(False, description="Keep the current user in the list"),
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = get_current_user(dependencies, db)
        return hybrid_options(
            db,
            exclude_user_id=None if include_self else user.user_id,
            only_registered=only_registered,
        )
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while merging student lists: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while merging student lists: {str(e)}",
        )


@router.get("/stats")
@token_required
async def get_roster_stats(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        return roster_stats(db)
    except Exception as e:
        State.logger.error(f"An error occured while fetching roster stats: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while fetching roster stats: {str(e)}",
        )


@router.post("/upload")
@token_required
@roles_required(Role.ADMIN)
async def upload_students(
    req: RosterUploadRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        result = upload_roster(req.students, db)
        invalidate_cache()
        return result
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        State.logger.error(f"An error occured while uploading roster: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"An error occured while uploading roster: {str(e)}"
        )


@router.post("/sync")
@token_required
@roles_required(Role.ADMIN)
async def sync_roster(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        result = force_sync(db)
        invalidate_cache()
        return result
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        State.logger.error(f"An error occured while syncing roster: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"An error occured while syncing roster: {str(e)}"
        )


@router.get("/{user_id}/validate")
@token_required
async def validate_student(
    user_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = validate_registration(user_id, db)
        return {"valid": True, "student": student_brief(user)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while validating student: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"An error occured while validating student: {str(e)}"
        )
