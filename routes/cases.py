from fastapi import APIRouter, Depends, HTTPException, Query

from controllers.analytics import case_progress
from controllers.case_exchange import exchange_cases, get_student, transfer_case
from controllers.case_import import import_cases
from controllers.cases import (
    admin_update_case,
    case_to_dict,
    create_case,
    delete_case,
    get_case_or_404,
    list_residents,
    query_cases,
    student_cases,
    update_status,
)
from controllers.change_log import format_log
from controllers.roster import validate_registration
from core.auth import JWTBearer, get_current_user, roles_required, token_required
from database.database import get_db
from models.enums import CaseStatus, Category, Role
from models.user import User
from schema.cases import (
    AdminCaseUpdateRequest,
    CaseCreateRequest,
    ExchangeRequest,
    ImportRequest,
    StatusUpdateRequest,
    TransferRequest,
)
from utils.state import State

router = APIRouter()

LOG_STUDENT_KEYS = (
    "from_student_id",
    "to_student_id",
    "target_student_id",
    "source_student_id",
)


@router.get("/")
@token_required
async def get_cases(
    category: Category | None = Query(None, description="Treatment category"),
    status: CaseStatus | None = Query(None, description="Case status"),
    resident: str | None = Query(None, description="Assigned resident"),
    month: int | None = Query(None, ge=1, le=12, description="Appointment month"),
    search: str | None = Query(None, description="Patient name/number or resident"),
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        viewer = get_current_user(dependencies, db)
        cases = query_cases(
            db,
            viewer,
            category=category.value if category else None,
            status=status.value if status else None,
            resident=resident,
            month=month,
            search=search,
        )
        return {"cases": [case_to_dict(case) for case in cases]}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching all cases: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while fetching all cases: {str(e)}")


@router.get("/residents")
@token_required
async def get_residents(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        return {"residents": list_residents(db)}
    except Exception as e:
        State.logger.error(f"An error occured while fetching residents: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while fetching residents: {str(e)}")


@router.get("/mine")
@token_required
@roles_required(Role.STUDENT)
async def get_my_cases(
    status: CaseStatus | None = Query(None, description="Case status"),
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = get_current_user(dependencies, db)
        cases = student_cases(db, user.user_id)
        filtered = [case for case in cases if not status or case.case_status == status.value]
        return {
            "cases": [case_to_dict(case) for case in filtered],
            "progress": case_progress(cases),
        }
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching my cases: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while fetching my cases: {str(e)}")


@router.post("/import")
@token_required
@roles_required(Role.ADMIN)
async def import_ledger(
    req: ImportRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        actor = get_current_user(dependencies, db)
        return import_cases(req.rows, actor, db)
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while importing cases: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while importing cases: {str(e)}")


@router.post("/transfer")
@token_required
@roles_required(Role.STUDENT)
async def transfer(
    req: TransferRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        actor = get_current_user(dependencies, db)
        case = get_case_or_404(req.case_id, db)
        target = validate_registration(req.to_student_id, db)
        case = transfer_case(case, actor, target, req.note, db)
        return {"case": case_to_dict(case)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while transferring case: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while transferring case: {str(e)}")


@router.post("/exchange")
@token_required
@roles_required(Role.STUDENT)
async def exchange(
    req: ExchangeRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        actor = get_current_user(dependencies, db)
        my_case = get_case_or_404(req.my_case_id, db)
        their_case = get_case_or_404(req.their_case_id, db)
        other = get_student(req.student_id, db)
        my_case, their_case = exchange_cases(my_case, their_case, actor, other, db)
        return {"my_case": case_to_dict(my_case), "their_case": case_to_dict(their_case)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while exchanging cases: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while exchanging cases: {str(e)}")


@router.post("/")
@token_required
async def create_new_case(
    req: CaseCreateRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        actor = get_current_user(dependencies, db)
        case = create_case(req, actor, db)
        return {"case": case_to_dict(case)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while creating new case: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while creating new case: {str(e)}")


@router.get("/{case_id}")
@token_required
async def get_case(
    case_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        case = get_case_or_404(case_id, db)
        return {"case": case_to_dict(case)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching case: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while fetching case: {str(e)}")


@router.put("/{case_id}")
@token_required
@roles_required(Role.ADMIN)
async def update_case(
    case_id: str,
    req: AdminCaseUpdateRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        actor = get_current_user(dependencies, db)
        case = admin_update_case(get_case_or_404(case_id, db), req, actor, db)
        return {"case": case_to_dict(case)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while updating case: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while updating case: {str(e)}")


@router.patch("/{case_id}/status")
@token_required
async def update_case_status(
    case_id: str,
    req: StatusUpdateRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        actor = get_current_user(dependencies, db)
        case = update_status(get_case_or_404(case_id, db), req, actor, db)
        return {"case": case_to_dict(case)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while updating case status: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while updating case status: {str(e)}")


@router.get("/{case_id}/log")
@token_required
async def get_case_log(
    case_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        case = get_case_or_404(case_id, db)
        student_ids = {
            entry.get(key)
            for entry in case.change_log or []
            for key in LOG_STUDENT_KEYS
            if entry.get(key)
        }
        students = {
            user.user_id: user
            for user in db.query(User).filter(User.user_id.in_(list(student_ids))).all()
        }
        return {"case_id": case_id, "log": format_log(case, students)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching case log: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while fetching case log: {str(e)}")


@router.delete("/{case_id}")
@token_required
@roles_required(Role.ADMIN)
async def remove_case(
    case_id: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        delete_case(get_case_or_404(case_id, db), db)
        return {"detail": "Case deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while deleting case: {str(e)}")
        raise HTTPException(status_code=500, detail=f"An error occured while deleting case: {str(e)}")
