from fastapi import APIRouter, Depends, HTTPException

from controllers.case_import import upsert_patient
from core.auth import JWTBearer, roles_required, token_required
from database.database import get_db
from models.enums import Role
from models.patients import Patient
from schema.patient import PatientUpsertRequest
from utils.serialize import row_to_dict
from utils.state import State

router = APIRouter()


@router.get("/")
@token_required
async def get_patients(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        patients = db.query(Patient).order_by(Patient.patient_number).all()
        return {"patients": [row_to_dict(patient) for patient in patients]}
    except Exception as e:
        State.logger.error(f"An error occured while fetching patients: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{patient_number}")
@token_required
async def get_patient(
    patient_number: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        patient = (
            db.query(Patient).filter(Patient.patient_number == patient_number).first()
        )
        if not patient:
            raise HTTPException(status_code=404, detail="Patient not found")
        return {"patient": row_to_dict(patient)}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while fetching patient: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/")
@token_required
async def save_patient(
    req: PatientUpsertRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        patient = upsert_patient(db, req.patient_number.strip(), req.patient_name.strip())
        db.commit()
        db.refresh(patient)
        return {"patient": row_to_dict(patient)}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        State.logger.error(f"An error occured while saving patient: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{patient_number}")
@token_required
@roles_required(Role.ADMIN)
async def delete_patient(
    patient_number: str,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        patient = (
            db.query(Patient).filter(Patient.patient_number == patient_number).first()
        )
        if not patient:
            raise HTTPException(status_code=404, detail="Patient not found")
        db.delete(patient)
        db.commit()
        return {"detail": "Patient deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while deleting patient: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
