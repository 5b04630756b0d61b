import datetime
import os

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import desc

from controllers.analytics import student_cases_filter
from controllers.roster import invalidate_cache, relink_registration, unlink_registration
from core.auth import JWTBearer, get_current_user, roles_required, token_required
from database.database import get_db
from models.cases import Case
from models.enums import Role
from models.user import User
from schema.user import AdminUserUpdate, ProfileUpdate
from utils.serialize import user_to_dict
from utils.state import State
from utils.token import get_hashed_password

router = APIRouter()


def _get_user_or_404(user_id: str, db) -> User:
    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        State.logger.error(f"User with ID {user_id} not found")
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/")
@token_required
@roles_required(Role.ADMIN)
async def get_users(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        users = db.query(User).order_by(desc(User.time_created)).all()
        return {"users": [user_to_dict(user) for user in users]}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching all users: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while fetching all users: {str(e)}",
        )


@router.get("/me")
@token_required
async def get_self(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = get_current_user(dependencies, db)
        return {"user": user_to_dict(user)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching user details: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while fetching user details: {str(e)}",
        )


@router.put("/me")
@token_required
async def update_profile(
    req: ProfileUpdate,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = get_current_user(dependencies, db)
        if req.number is not None:
            user.number = req.number.strip() or None
        if req.name is not None:
            user.name = req.name.strip() or None
        user.time_updated = datetime.datetime.now(datetime.UTC).isoformat()
        relink_registration(user, db)
        db.commit()
        db.refresh(user)
        invalidate_cache()
        return {"user": user_to_dict(user)}
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        State.logger.error(f"An error occured while updating profile: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while updating profile: {str(e)}",
        )


@router.get("/{user_id}")
@token_required
async def get_user(
    user_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = _get_user_or_404(user_id, db)
        return {"user": user_to_dict(user)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching user details: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while fetching user details: {str(e)}",
        )


@router.get("/{user_id}/case-count")
@token_required
async def get_user_case_count(
    user_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        count = db.query(Case).filter(student_cases_filter(user_id)).count()
        return {"user_id": user_id, "case_count": count}
    except Exception as e:
        State.logger.error(f"An error occured while counting user cases: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while counting user cases: {str(e)}",
        )


@router.put("/{user_id}")
@token_required
@roles_required(Role.ADMIN)
async def update_user(
    user_id: str,
    req: AdminUserUpdate,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = _get_user_or_404(user_id, db)
        if req.email is not None:
            user_with_email = db.query(User).filter(User.email == req.email).first()
            if user_with_email and user_with_email.user_id != user_id:
                raise HTTPException(status_code=400, detail="Email already in use")
            user.email = req.email
        if req.number is not None:
            user.number = req.number.strip() or None
        if req.name is not None:
            user.name = req.name.strip() or None
        if req.role is not None:
            user.role = req.role.value
        user.time_updated = datetime.datetime.now(datetime.UTC).isoformat()
        relink_registration(user, db)
        db.commit()
        db.refresh(user)
        invalidate_cache()
        return {"message": "User updated successfully", "user": user_to_dict(user)}
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        State.logger.error(f"An error occured while updating user details: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while updating user details: {str(e)}",
        )


@router.post("/{user_id}/reset-password")
@token_required
@roles_required(Role.ADMIN)
async def reset_password(
    user_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = _get_user_or_404(user_id, db)
        user.password = get_hashed_password(os.getenv("DEFAULT_RESET_PASSWORD", "1111"))
        user.time_updated = datetime.datetime.now(datetime.UTC).isoformat()
        db.commit()
        State.logger.info(f"Password reset for user {user_id}")
        return {"message": "Password reset successfully"}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while resetting password: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while resetting password: {str(e)}",
        )


@router.delete("/{user_id}")
@token_required
@roles_required(Role.ADMIN)
async def delete_user(
    user_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = _get_user_or_404(user_id, db)
        unlink_registration(user_id, db)
        db.delete(user)
        db.commit()
        invalidate_cache()
        return {"message": "User deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        State.logger.error(f"An error occured while deleting user: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"An error occured while deleting user: {str(e)}"
        )
