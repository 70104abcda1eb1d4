from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timedelta
from typing import Optional

from todo_app import models, schemas
from todo_app.logger import logger


# ============== TASK CRUD ==============
def _task_query(db: Session, completed: Optional[bool] = None):
    query = db.query(models.Task)
    if completed is not None:
        query = query.filter(models.Task.completed == completed)
    return query


def get_tasks(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    ordering: Optional[str] = None,
    completed: Optional[bool] = None
) -> list[models.Task]:
    """Get tasks with pagination, optionally filtered and ordered by creation time"""
    try:
        query = _task_query(db, completed)
        if ordering == "-created_at":
            query = query.order_by(models.Task.created_at.desc(), models.Task.id.desc())
        elif ordering == "created_at":
            query = query.order_by(models.Task.created_at.asc(), models.Task.id.asc())
        else:
            query = query.order_by(models.Task.id.asc())
        return query.offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching tasks: {str(e)}")
        raise


def get_tasks_count(db: Session, completed: Optional[bool] = None) -> int:
    """Get total count of tasks"""
    try:
        return _task_query(db, completed).count()
    except SQLAlchemyError as e:
        logger.error(f"Error counting tasks: {str(e)}")
        raise


def get_task(db: Session, task_id: int) -> Optional[models.Task]:
    """Get a single task by ID"""
    try:
        return db.query(models.Task).filter(models.Task.id == task_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching task {task_id}: {str(e)}")
        raise


def create_task(db: Session, task: schemas.TaskCreate) -> models.Task:
    """Create a new task"""
    try:
        db_task = models.Task(**task.model_dump())
        db.add(db_task)
        db.commit()
        db.refresh(db_task)
        logger.info(f"Created task with ID: {db_task.id}")
        return db_task
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating task: {str(e)}")
        raise


def update_task(
    db: Session,
    task_id: int,
    task: schemas.TaskUpdate | schemas.TaskReplace
) -> Optional[models.Task]:
    """Update an existing task.

    A TaskReplace carries every writable field, so the same path serves
    both PUT and PATCH. created_at is never writable.
    """
    try:
        db_task = get_task(db, task_id)
        if db_task:
            update_data = task.model_dump(exclude_unset=True)
            for key, value in update_data.items():
                setattr(db_task, key, value)
            db.commit()
            db.refresh(db_task)
            logger.info(f"Updated task with ID: {task_id}")
        return db_task
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating task {task_id}: {str(e)}")
        raise


def delete_task(db: Session, task_id: int) -> Optional[models.Task]:
    """Delete a task"""
    try:
        db_task = get_task(db, task_id)
        if db_task:
            db.delete(db_task)
            db.commit()
            logger.info(f"Deleted task with ID: {task_id}")
        return db_task
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting task {task_id}: {str(e)}")
        raise


# ============== USER CRUD ==============
def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_username(db: Session, username: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.username == username).first()


def get_users_count(db: Session) -> int:
    return db.query(models.User).count()


def create_user(db: Session, username: str, hashed_password: str) -> models.User:
    try:
        db_user = models.User(username=username, hashed_password=hashed_password)
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
        logger.info(f"Registered user with ID: {db_user.id}")
        return db_user
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating user {username}: {str(e)}")
        raise


# ============== SESSION MANAGEMENT ==============
def create_session(db: Session, user_id: int, token: str, lifetime: timedelta) -> models.UserSession:
    expires_at = datetime.utcnow() + lifetime
    db_session = models.UserSession(user_id=user_id, token=token, expires_at=expires_at)
    db.add(db_session)
    db.commit()
    db.refresh(db_session)
    return db_session


def get_active_session(db: Session, token: str) -> Optional[models.UserSession]:
    return db.query(models.UserSession).filter(
        models.UserSession.token == token,
        models.UserSession.revoked == False,  # noqa: E712
        models.UserSession.expires_at > datetime.utcnow()
    ).first()


def revoke_session(db: Session, token: str) -> int:
    """Revoke the session with this token, returning how many rows changed"""
    revoked = db.query(models.UserSession).filter(
        models.UserSession.token == token,
        models.UserSession.revoked == False  # noqa: E712
    ).update({"revoked": True})
    db.commit()
    return revoked


def purge_expired_sessions(db: Session) -> int:
    purged = db.query(models.UserSession).filter(
        models.UserSession.expires_at <= datetime.utcnow()
    ).delete()
    db.commit()
    if purged:
        logger.info(f"Purged {purged} expired sessions")
    return purged
