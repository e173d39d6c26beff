from fastapi import FastAPI, APIRouter, Depends, Path, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional
from datetime import date
import logging

import config
import attendance
import classrooms
from auth import (
    authenticate_user,
    create_user_token,
    decode_token,
    public_user,
    register_user,
)
from database import get_user_by_id, init_db
from exceptions import AttendanceError, AuthenticationRequired, InvalidToken
from models import AttendanceMark, ClassroomCreate, JoinClassroom, UserLogin, UserRegistration

# Set up logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Classroom Attendance")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

bearer_scheme = HTTPBearer(auto_error=False)

# Largest value an SQLite INTEGER column can hold
MAX_ID = 2**63 - 1


# ----------------------
# Error handling
# ----------------------

@app.exception_handler(AttendanceError)
async def attendance_error_handler(request: Request, exc: AttendanceError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid input"
    logger.warning(f"Invalid input on {request.method} {request.url.path}: {message}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}", exc_info=exc)
    content = {"message": "An unexpected error occurred"}
    if config.is_development():
        content["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# ----------------------
# Auth
# ----------------------

def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> dict:
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequired()

    payload = decode_token(credentials.credentials)
    if not payload:
        raise InvalidToken()

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise InvalidToken("Invalid token payload")

    user = get_user_by_id(user_id)
    if not user:
        logger.warning(f"Token subject {user_id} no longer exists")
        raise InvalidToken()
    return user


@app.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(body: UserRegistration):
    user = register_user(
        body.email,
        body.password,
        body.role.value,
        student_id=body.student_id,
        enrollment_date=body.enrollment_date,
    )
    return {"user": public_user(user), "token": create_user_token(user)}


@app.post("/auth/login")
def login(body: UserLogin):
    user = authenticate_user(body.email, body.password)
    return {"user": public_user(user), "token": create_user_token(user)}


@app.get("/auth/me")
def me(user: dict = Depends(get_current_user)):
    return public_user(user)


# ----------------------
# Classrooms
# ----------------------

@app.post("/classrooms", status_code=status.HTTP_201_CREATED)
def create_classroom(body: ClassroomCreate, user: dict = Depends(get_current_user)):
    return classrooms.create_classroom(user["id"], body.name, body.description)


@app.get("/classrooms")
def list_classrooms(user: dict = Depends(get_current_user)):
    return classrooms.list_classrooms_for_user(user["id"])


@app.post("/classrooms/join")
def join_classroom(body: JoinClassroom, user: dict = Depends(get_current_user)):
    return classrooms.join_classroom(user["id"], body.join_code)


@app.get("/classrooms/{classroom_id}")
def get_classroom(classroom_id: int = Path(..., ge=1, le=MAX_ID), user: dict = Depends(get_current_user)):
    return classrooms.get_classroom(classroom_id, user["id"])


# ----------------------
# Attendance sessions
# ----------------------

@app.post("/attendance/session/start/{classroom_id}", status_code=status.HTTP_201_CREATED)
def start_session(classroom_id: int = Path(..., ge=1, le=MAX_ID), user: dict = Depends(get_current_user)):
    return attendance.start_session(classroom_id, user["id"])


@app.get("/attendance/session/active/{classroom_id}")
def get_active_session(classroom_id: int = Path(..., ge=1, le=MAX_ID), user: dict = Depends(get_current_user)):
    return attendance.get_active_session(classroom_id)


@app.get("/attendance/session/records/{classroom_id}")
def get_session_history(
    classroom_id: int = Path(..., ge=1, le=MAX_ID),
    on: Optional[date] = Query(None, alias="date"),
    user: dict = Depends(get_current_user),
):
    return attendance.list_session_history(classroom_id, user["id"], on)


@app.post("/attendance/session/{session_id}/end")
def end_session(session_id: int = Path(..., ge=1, le=MAX_ID), user: dict = Depends(get_current_user)):
    return attendance.end_session(session_id, user["id"])


@app.post("/attendance/session/{session_id}/mark", status_code=status.HTTP_201_CREATED)
def mark_present(session_id: int = Path(..., ge=1, le=MAX_ID), user: dict = Depends(get_current_user)):
    return attendance.mark_present(session_id, user["id"])


@app.get("/attendance/session/{session_id}")
def get_session(session_id: int = Path(..., ge=1, le=MAX_ID), user: dict = Depends(get_current_user)):
    return attendance.get_session(session_id, user["id"])


# ----------------------
# Direct-mark attendance (deprecated)
# ----------------------

legacy_router = APIRouter(prefix="/attendance", tags=["legacy"], deprecated=True)


@legacy_router.post("/{classroom_id}/mark", status_code=status.HTTP_201_CREATED)
def mark_classroom_attendance(body: AttendanceMark, classroom_id: int = Path(..., ge=1, le=MAX_ID), user: dict = Depends(get_current_user)):
    return attendance.mark_attendance(classroom_id, user["id"], body.status.value)


@legacy_router.get("/{classroom_id}")
def get_classroom_attendance(classroom_id: int = Path(..., ge=1, le=MAX_ID), user: dict = Depends(get_current_user)):
    return attendance.list_attendance(classroom_id, user["id"])


if config.LEGACY_ATTENDANCE_ENABLED:
    app.include_router(legacy_router)


# ----------------------
# Health
# ----------------------

@app.get("/")
def read_root():
    return {"message": "Attendance backend running", "environment": config.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    try:
        init_db()
    except Exception as e:
        logger.critical(f"Could not initialize the database: {str(e)}", exc_info=True)
        raise


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
