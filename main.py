from dotenv import load_dotenv

load_dotenv(".env")

from contextlib import asynccontextmanager

import logfire
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database.database import Base, engine
from models import cases as _cases  # noqa: F401
from models import charting_progress as _charting_progress  # noqa: F401
from models import patients as _patients  # noqa: F401
from models import student_master as _student_master  # noqa: F401
from models import token as _token  # noqa: F401
from models import user as _user  # noqa: F401
from routes import auth, cases, charting, patient, stats, students, user
from utils.state import State

state = State()
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    state.logger.info("Starting up...")
    yield
    state.logger.info("Shutting down...")


app = FastAPI(
    title="Dental Case Tracker API",
    description="Clinical case assignment, exchange and progress tracking for dental students",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=False,
    allow_origins=["*"],
    allow_headers=["*"],
    allow_methods=["*"],
)

# logfire itself is configured by the SingletonLogger behind State
logfire.instrument_fastapi(app, capture_headers=True)
logfire.instrument_sqlalchemy(engine)

app.include_router(auth.router, prefix="/api/v1/auth")
app.include_router(user.router, prefix="/api/v1/users")
app.include_router(patient.router, prefix="/api/v1/patient")
app.include_router(cases.router, prefix="/api/v1/cases")
app.include_router(students.router, prefix="/api/v1/students")
app.include_router(charting.router, prefix="/api/v1/charting")
app.include_router(stats.router, prefix="/api/v1/stats")


@app.get("/")
async def root():
    return {"message": "Welcome to the Dental Case Tracker API"}
