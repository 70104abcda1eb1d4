import time
from contextlib import asynccontextmanager
from typing import List, Literal, Optional

from fastapi import APIRouter, FastAPI, Depends, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from todo_app import auth, crud, models, schemas
from todo_app.config import get_settings
from todo_app.database import get_db, init_db
from todo_app.logger import logger

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events"""
    logger.info(f"Starting {settings.app_name}")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise

    yield

    logger.info(f"Shutting down {settings.app_name}")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="To-do list API with session cookie authentication",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_credentials,
    allow_methods=settings.cors_methods,
    allow_headers=settings.cors_headers,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path} completed in {process_time:.3f}s "
        f"with status: {response.status_code}"
    )
    response.headers["X-Process-Time"] = str(process_time)
    return response


def _error_field(loc) -> str:
    # Drop the "body"/"query"/"path" prefix FastAPI puts on every location
    parts = [str(part) for part in loc[1:]] if len(loc) > 1 else [str(part) for part in loc]
    return ".".join(parts) or "non_field_errors"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": _error_field(error.get("loc", ())), "message": error.get("msg", "Invalid value")}
        for error in exc.errors()
    ]
    logger.info(f"Validation failed for {request.method} {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation error", "errors": errors}
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Database error occurred"}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred"}
    )


# Health check endpoints
@app.get("/health", tags=["Health"])
def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/health/ready", tags=["Health"])
def readiness_check(db: Session = Depends(get_db)):
    """Check if service is ready (including database)"""
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "ready",
            "service": settings.app_name,
            "database": "connected"
        }
    except Exception as e:
        logger.error(f"Readiness check failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not ready"
        )


@app.get("/", tags=["Root"])
def read_root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.version,
        "docs": "/docs",
        "api": settings.api_prefix or "/",
    }


# ============== AUTHENTICATION ==============
auth_router = APIRouter(prefix=settings.api_prefix, tags=["Authentication"])


@auth_router.post("/register", response_model=schemas.Message)
def register(user_data: schemas.UserRegister, db: Session = Depends(get_db)):
    """Register a new user. Does not log the user in."""
    if crud.get_user_by_username(db, user_data.username):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already registered"
        )
    try:
        crud.create_user(db, user_data.username, auth.get_password_hash(user_data.password))
    except IntegrityError:
        # Lost a race against a concurrent registration of the same name
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already registered"
        )
    return {"message": "User registered successfully"}


@auth_router.post("/login", response_model=schemas.LoginResponse)
def login(user_data: schemas.UserLogin, response: Response, db: Session = Depends(get_db)):
    """Verify credentials and start a cookie-backed session"""
    user = auth.authenticate_user(db, user_data.username, user_data.password)
    if not user:
        logger.info("Failed login attempt")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid credentials"
        )

    crud.purge_expired_sessions(db)
    token = auth.new_session_token()
    crud.create_session(db, user.id, token, auth.session_lifetime())
    auth.set_session_cookie(response, token)
    logger.info(f"User {user.id} logged in")
    return {"message": "Login successful", "username": user.username}


@auth_router.post("/logout", response_model=schemas.Message)
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    """End the current session. Calling it without a session is not an error."""
    token = auth.get_session_token(request)
    if token and crud.revoke_session(db, token):
        logger.info("Session revoked on logout")
    auth.clear_session_cookie(response)
    return {"message": "Logged out"}


@auth_router.get("/me", response_model=schemas.UserResponse)
def read_current_user(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


# ============== TASKS ==============
task_router = APIRouter(
    prefix=f"{settings.api_prefix}/tasks",
    tags=["Tasks"],
    dependencies=[Depends(auth.require_task_access)],
)


def _not_found(task_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Task with ID {task_id} not found"
    )


@task_router.get("", response_model=List[schemas.Task])
def read_tasks(
        response: Response,
        skip: int = Query(0, ge=0),
        limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
        ordering: Optional[Literal["created_at", "-created_at"]] = None,
        completed: Optional[bool] = None,
        db: Session = Depends(get_db)
):
    """List tasks. The total before paging is returned in X-Total-Count."""
    tasks = crud.get_tasks(db, skip=skip, limit=limit, ordering=ordering, completed=completed)
    response.headers["X-Total-Count"] = str(crud.get_tasks_count(db, completed=completed))
    return tasks


@task_router.post("", response_model=schemas.Task, status_code=status.HTTP_201_CREATED)
def create_task(task: schemas.TaskCreate, db: Session = Depends(get_db)):
    """Create a new task"""
    return crud.create_task(db=db, task=task)


@task_router.get("/{task_id}", response_model=schemas.Task)
def read_task(task_id: int, db: Session = Depends(get_db)):
    """Get a specific task by ID"""
    db_task = crud.get_task(db, task_id=task_id)
    if db_task is None:
        raise _not_found(task_id)
    return db_task


@task_router.put("/{task_id}", response_model=schemas.Task)
def replace_task(task_id: int, task: schemas.TaskReplace, db: Session = Depends(get_db)):
    """Replace the writable fields of a task"""
    db_task = crud.update_task(db, task_id=task_id, task=task)
    if db_task is None:
        raise _not_found(task_id)
    return db_task


@task_router.patch("/{task_id}", response_model=schemas.Task)
def update_task(task_id: int, task: schemas.TaskUpdate, db: Session = Depends(get_db)):
    """Update only the fields present in the body"""
    db_task = crud.update_task(db, task_id=task_id, task=task)
    if db_task is None:
        raise _not_found(task_id)
    return db_task


@task_router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_task(task_id: int, db: Session = Depends(get_db)):
    """Delete a task permanently"""
    db_task = crud.delete_task(db, task_id=task_id)
    if db_task is None:
        raise _not_found(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


app.include_router(auth_router)
app.include_router(task_router)
