from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Depends, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Iterable, List, Optional
import logging
import os

from flowboard import models, schemas
from flowboard.database import Database, get_database, get_db
from flowboard.errors import FlowboardError, InvalidReference, NotFound, ValidationError, Forbidden
from flowboard.time_utils import utc_now, is_date_range_valid
from flowboard.auth.routes import router as auth_router
from flowboard.auth.dependencies import Identity, get_current_identity, get_current_admin, get_current_user
from flowboard.auth.permissions import (
    get_project_or_404,
    get_viewable_projects,
    require_view,
    require_edit,
    require_delete,
)
from flowboard.membership import (
    add_members,
    remove_member,
    leave_project,
    update_permission_role,
    require_users_exist,
)

# Configure logging
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


# ============== Startup: Database Handle ==============

def ensure_admin_user(database: Database) -> None:
    """
    Create the bootstrap admin when ADMIN_EMAIL and ADMIN_PASSWORD are set.

    Does nothing if a user with that email already exists.
    """
    from flowboard.auth.security import hash_password, is_production_like

    admin_email = os.environ.get("ADMIN_EMAIL")
    admin_password = os.environ.get("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        logger.debug("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping admin bootstrap")
        return

    if is_production_like() and len(admin_password.strip()) < 8:
        raise RuntimeError("ADMIN_PASSWORD must be at least 8 characters long in production/staging")

    db = database.session()
    try:
        admin = db.execute(select(models.User).where(models.User.email == admin_email)).scalars().first()
        if admin:
            logger.info(f"Admin user already exists (email: {admin_email})")
            return

        admin = models.User(
            username=admin_email.split("@")[0],
            email=admin_email,
            password_hash=hash_password(admin_password),
            role=models.UserRole.admin,
        )
        db.add(admin)
        db.commit()
        logger.critical(f"Admin user created (email: {admin_email})")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to ensure admin user exists: {e}")
        raise
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A handle set before startup belongs to the caller and is not disposed here
    database = getattr(app.state, "database", None)
    owned = database is None
    if owned:
        database = Database()
        app.state.database = database
    database.create_all()
    ensure_admin_user(database)
    logger.info("Database handle opened")

    yield

    if owned:
        database.dispose()
        app.state.database = None
        logger.info("Database handle closed")


app = FastAPI(
    title="Flowboard API",
    description="Project management backend with projects, categories, tasks and role-based access",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: any localhost frontend in development, FRONTEND_URL only elsewhere
_frontend_url = os.environ.get("FRONTEND_URL", "")
if os.environ.get("ENVIRONMENT", "development").lower() in ("production", "staging"):
    _allowed_origins = [_frontend_url] if _frontend_url else []
else:
    _allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ] + ([_frontend_url] if _frontend_url else [])

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register authentication router
app.include_router(auth_router)


@app.exception_handler(FlowboardError)
async def flowboard_error_handler(request: Request, exc: FlowboardError):
    logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Persistence failures become a 500 with diagnostic detail."""
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Database error", "error": str(exc)},
    )


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/api/ping")
def ping(database: Database = Depends(get_database)):
    """Check connectivity to the database."""
    try:
        database.ping()
    except SQLAlchemyError as e:
        logger.error(f"Database ping failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Failed to connect to the database.", "error": str(e)},
        )
    return {"message": "Database reachable", "ok": 1}


# ============== Helpers ==============

def _dedupe(ids: Iterable[int]) -> List[int]:
    seen = []
    for value in ids:
        if value not in seen:
            seen.append(value)
    return seen


def _referenced_project(db: Session, project_id: int) -> models.Project:
    """Load a project named in a request body; a missing one is a bad reference."""
    project = db.get(models.Project, project_id, populate_existing=True)
    if project is None:
        logger.info(f"Referenced project {project_id} does not exist")
        raise InvalidReference("ProjectId does not exist.")
    return project


def _resolve_category(db: Session, category_id: int, project_id: int) -> models.Category:
    """The category must exist and belong to the task's project."""
    category = db.get(models.Category, category_id)
    if category is None:
        logger.info(f"Category {category_id} not found")
        raise InvalidReference("CategoryId does not exist.")
    if category.project_id != project_id:
        logger.info(f"Category {category_id} is in project {category.project_id}, not {project_id}")
        raise InvalidReference("CategoryId does not belong to the task's project.")
    return category


def _validate_assignees(db: Session, project: models.Project, user_ids: List[int]) -> List[int]:
    user_ids = _dedupe(user_ids)
    require_users_exist(db, user_ids)
    outsiders = [u for u in user_ids if not project.has_member(u) and project.role_of(u) is None]
    if outsiders:
        logger.info(f"Assignees {outsiders} are not members of project {project.id}")
        raise InvalidReference(
            f"Cannot assign task to user(s) {', '.join(str(u) for u in outsiders)}: not a member of this project"
        )
    return user_ids


def _reject_nulls(update_data: dict, fields: Iterable[str]) -> None:
    for field in fields:
        if field in update_data and update_data[field] is None:
            raise ValidationError(f"{field} cannot be null")


def _get_category_or_404(db: Session, category_id: int) -> models.Category:
    category = db.get(models.Category, category_id)
    if not category:
        raise NotFound("Category not found.")
    return category


def _get_task_or_404(db: Session, task_id: int) -> models.Task:
    task = db.get(models.Task, task_id, populate_existing=True)
    if not task:
        raise NotFound("Task not found.")
    return task


def _viewable_project_ids(db: Session, identity: Identity) -> List[int]:
    return [p.id for p in get_viewable_projects(db, identity)]


# ============== Users ==============

@app.get("/api/users", response_model=List[schemas.User])
def list_users(
    admin: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """List all users (admin only)."""
    logger.debug(f"Admin {admin.user_id} listing all users")
    return db.execute(select(models.User).order_by(models.User.id)).scalars().all()


@app.get("/api/users/{user_id}", response_model=schemas.User)
def get_user(
    user_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Get user by ID. The password hash is never returned."""
    logger.debug(f"User {identity.user_id} requesting user {user_id}")
    user = db.get(models.User, user_id)
    if not user:
        raise NotFound("User not found.")
    return user


@app.patch("/api/users/{user_id}", response_model=schemas.User)
def update_user(
    user_id: int,
    user_update: schemas.UserUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Partially update a user (admin or self). Only admins can change role."""
    logger.debug(f"User {identity.user_id} updating user {user_id}")

    if not identity.is_admin and identity.user_id != user_id:
        raise Forbidden("Access denied. You can only update your own profile.")

    user = db.get(models.User, user_id)
    if not user:
        raise NotFound("User not found.")

    update_data = user_update.model_dump(exclude_unset=True)
    _reject_nulls(
        update_data,
        ("username", "email", "password", "role", "first_name", "middle_name", "last_name", "contact_number"),
    )

    if "role" in update_data and not identity.is_admin:
        raise Forbidden("Only admins can change a user's role.")

    if "email" in update_data and update_data["email"] != user.email:
        taken = db.execute(
            select(models.User.id).where(models.User.email == update_data["email"], models.User.id != user_id)
        ).first()
        if taken:
            raise HTTPException(status_code=400, detail=f"Email '{update_data['email']}' is already in use")

    if "username" in update_data and update_data["username"] != user.username:
        taken = db.execute(
            select(models.User.id).where(models.User.username == update_data["username"], models.User.id != user_id)
        ).first()
        if taken:
            raise HTTPException(status_code=400, detail=f"Username '{update_data['username']}' is already in use")

    if "password" in update_data:
        from flowboard.auth.security import hash_password

        user.password_hash = hash_password(update_data.pop("password"))

    for key, value in update_data.items():
        setattr(user, key, value)

    db.commit()
    db.refresh(user)

    logger.info(f"User updated: {user.email} (ID: {user.id})")
    return user


# ============== Projects ==============

@app.get("/api/projects", response_model=List[schemas.Project])
def list_projects(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """List all projects the caller holds a role in (admins see all)."""
    logger.debug(f"User {identity.user_id} listing projects")
    return get_viewable_projects(db, identity)


@app.post("/api/projects", response_model=schemas.Project, status_code=status.HTTP_201_CREATED)
def create_project(
    project: schemas.ProjectCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a project. The creator becomes its immutable Owner."""
    logger.debug(f"User {current_user.id} creating project: {project.name}")

    extra_members = [m for m in _dedupe(project.team_members) if m != current_user.id]
    require_users_exist(db, extra_members)

    db_project = models.Project(
        name=project.name,
        description=project.description,
        created_by=current_user.id,  # Always the authenticated user
        team_members=[current_user.id] + extra_members,
        permissions={str(current_user.id): models.Role.Owner.value},
    )
    db.add(db_project)
    db.commit()
    db.refresh(db_project)

    logger.info(f"Project created: {db_project.name} (ID: {db_project.id}) by user {current_user.id}")
    return db_project


@app.get("/api/projects/{project_id}", response_model=schemas.Project)
def get_project(
    project_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Get project (requires any role)."""
    project = get_project_or_404(db, project_id)
    require_view(project, identity)
    return project


@app.patch("/api/projects/{project_id}", response_model=schemas.Project)
def update_project(
    project_id: int,
    project_update: schemas.ProjectUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Update project name/description (requires Owner/Editor)."""
    logger.debug(f"User {identity.user_id} updating project {project_id}")

    project = get_project_or_404(db, project_id)
    require_edit(project, identity)

    update_data = project_update.model_dump(exclude_unset=True)
    _reject_nulls(update_data, ("name",))
    for key, value in update_data.items():
        setattr(project, key, value)

    db.commit()
    db.refresh(project)

    logger.info(f"Project updated: {project.name} (ID: {project_id})")
    return project


@app.delete("/api/projects/{project_id}")
def delete_project(
    project_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Delete project (requires Owner or admin). Categories and tasks are left in place."""
    logger.debug(f"User {identity.user_id} deleting project {project_id}")

    project = get_project_or_404(db, project_id)
    require_delete(project, identity)

    db.delete(project)
    db.commit()

    logger.info(f"Project deleted: {project.name} (ID: {project_id})")
    return {"message": "Project deleted", "id": project_id}


# ============== Project Members ==============

@app.get("/api/projects/{project_id}/members", response_model=List[schemas.ProjectMember])
def list_project_members(
    project_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """List members with their roles. Invited users without a role have role null."""
    project = get_project_or_404(db, project_id)
    require_view(project, identity)

    member_ids = _dedupe(list(project.team_members or []) + [int(k) for k in (project.permissions or {})])
    users = {
        u.id: u for u in db.execute(select(models.User).where(models.User.id.in_(member_ids))).scalars().all()
    }
    return [
        schemas.ProjectMember(
            user_id=member_id,
            username=users[member_id].username if member_id in users else None,
            role=project.role_of(member_id),
        )
        for member_id in member_ids
    ]


@app.post("/api/projects/{project_id}/member", response_model=schemas.Project)
def add_project_members(
    project_id: int,
    payload: schemas.MembersAdd,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Add members and/or assign roles. An empty role revokes it."""
    logger.debug(f"User {identity.user_id} adding members to project {project_id}")
    project = get_project_or_404(db, project_id)
    return add_members(db, project, _dedupe(payload.user_ids), payload.permissions, identity)


@app.delete("/api/projects/{project_id}/member", response_model=schemas.Project)
def remove_project_member(
    project_id: int,
    payload: schemas.MemberRemove,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Remove a member from the project (requires Owner/Editor; Owners only by Owners)."""
    logger.debug(f"User {identity.user_id} removing member {payload.member_id} from project {project_id}")
    project = get_project_or_404(db, project_id)
    return remove_member(db, project, payload.member_id, identity)


@app.delete("/api/projects/{project_id}/leave", response_model=schemas.Project)
def leave_project_endpoint(
    project_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Leave a project. Owners must delete the project instead."""
    project = get_project_or_404(db, project_id)
    return leave_project(db, project, identity)


@app.patch("/api/projects/{project_id}/permissions", response_model=schemas.PermissionUpdateResult)
def update_project_permission(
    project_id: int,
    payload: schemas.PermissionUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Set or (with an empty role) revoke one user's role (requires Owner or admin)."""
    project = get_project_or_404(db, project_id)
    project = update_permission_role(db, project, payload.user_id, payload.role, identity)
    return schemas.PermissionUpdateResult(
        message="Permission updated." if payload.role else "Permission revoked.",
        user_id=payload.user_id,
        role=project.role_of(payload.user_id),
    )


# ============== Categories ==============

def _tasks_for_categories(db: Session, category_ids: List[int]) -> dict:
    tasks_by_category = {category_id: [] for category_id in category_ids}
    if category_ids:
        tasks = db.execute(
            select(models.Task).where(models.Task.category_id.in_(category_ids)).order_by(models.Task.id)
        ).scalars().all()
        for task in tasks:
            tasks_by_category[task.category_id].append(task)
    return tasks_by_category


@app.get("/api/categories")
def list_categories(
    project_id: Optional[int] = Query(None, alias="projectId"),
    include_tasks: bool = Query(False, alias="includeTasks"),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """
    List categories, optionally for one project and with their tasks.

    With includeTasks=true each item is {"category": ..., "tasks": [...]}.
    """
    query = select(models.Category).order_by(models.Category.id)
    if project_id is not None:
        project = get_project_or_404(db, project_id)
        require_view(project, identity)
        query = query.where(models.Category.project_id == project_id)
    elif not identity.is_admin:
        query = query.where(models.Category.project_id.in_(_viewable_project_ids(db, identity)))

    categories = db.execute(query).scalars().all()
    logger.debug(f"User {identity.user_id} listed {len(categories)} categories")

    if not include_tasks:
        return [schemas.Category.model_validate(c).model_dump(by_alias=True, mode="json") for c in categories]

    tasks_by_category = _tasks_for_categories(db, [c.id for c in categories])
    return [
        schemas.CategoryWithTasks(
            category=schemas.Category.model_validate(c),
            tasks=[schemas.Task.model_validate(t) for t in tasks_by_category[c.id]],
        ).model_dump(by_alias=True, mode="json")
        for c in categories
    ]


@app.get("/api/categories/{category_id}", response_model=schemas.Category)
def get_category(
    category_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    category = _get_category_or_404(db, category_id)
    require_view(get_project_or_404(db, category.project_id), identity)
    return category


@app.get("/api/categories/{category_id}/tasks", response_model=List[schemas.Task])
def get_category_tasks(
    category_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    category = _get_category_or_404(db, category_id)
    require_view(get_project_or_404(db, category.project_id), identity)
    return _tasks_for_categories(db, [category.id])[category.id]


@app.post("/api/categories", response_model=schemas.Category, status_code=status.HTTP_201_CREATED)
def create_category(
    category: schemas.CategoryCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Create a category (requires Owner/Editor on the project)."""
    project = _referenced_project(db, category.project_id)
    require_edit(project, identity)

    db_category = models.Category(
        project_id=project.id,
        category_name=category.category_name,
        created_by=identity.user_id,
    )
    db.add(db_category)
    db.commit()
    db.refresh(db_category)

    logger.info(f"Category created: {db_category.category_name} (ID: {db_category.id}) in project {project.id}")
    return db_category


@app.patch("/api/categories/{category_id}", response_model=schemas.Category)
def update_category(
    category_id: int,
    category_update: schemas.CategoryUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Rename a category (requires Owner/Editor). Task copies of the name follow."""
    category = _get_category_or_404(db, category_id)
    require_edit(get_project_or_404(db, category.project_id), identity)

    update_data = category_update.model_dump(exclude_unset=True)
    _reject_nulls(update_data, ("category_name",))
    if "category_name" in update_data:
        category.category_name = update_data["category_name"]
        db.execute(
            update(models.Task)
            .where(models.Task.category_id == category.id)
            .values(category_name=category.category_name)
            .execution_options(synchronize_session=False)
        )

    db.commit()
    db.refresh(category)

    logger.info(f"Category updated: {category.category_name} (ID: {category_id})")
    return category


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Delete a category (requires Owner/Editor). Its tasks are not deleted."""
    category = _get_category_or_404(db, category_id)
    require_edit(get_project_or_404(db, category.project_id), identity)

    db.delete(category)
    db.commit()

    logger.info(f"Category {category_id} deleted by user {identity.user_id}")
    return {"message": "Category deleted successfully.", "id": category_id}


# ============== Tasks ==============

@app.get("/api/tasks", response_model=List[schemas.Task])
def list_tasks(
    project_id: Optional[int] = Query(None, alias="projectId"),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """List tasks, optionally for one project, limited to projects the caller can view."""
    query = select(models.Task).order_by(models.Task.id)
    if project_id is not None:
        project = get_project_or_404(db, project_id)
        require_view(project, identity)
        query = query.where(models.Task.project_id == project_id)
    elif not identity.is_admin:
        query = query.where(models.Task.project_id.in_(_viewable_project_ids(db, identity)))

    return db.execute(query).scalars().all()


@app.get("/api/tasks/{task_id}", response_model=schemas.Task)
def get_task(
    task_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    task = _get_task_or_404(db, task_id)
    require_view(get_project_or_404(db, task.project_id), identity)
    return task


@app.post("/api/tasks", response_model=schemas.Task, status_code=status.HTTP_201_CREATED)
def create_task(
    task: schemas.TaskCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Create a task (requires Owner/Editor on the project)."""
    logger.info(f"User {identity.user_id} creating task: {task.title} in project {task.project_id}")

    project = _referenced_project(db, task.project_id)
    require_edit(project, identity)

    category_name = None
    if task.category_id is not None:
        category_name = _resolve_category(db, task.category_id, project.id).category_name

    assigned_to = _validate_assignees(db, project, task.assigned_to)

    if not is_date_range_valid(task.start_date, task.end_date):
        raise ValidationError("startDate must not be after endDate")

    db_task = models.Task(
        **task.model_dump(exclude={"assigned_to"}),
        assigned_to=assigned_to,
        category_name=category_name,
        created_by=identity.user_id,  # Never trusted from the request body
        comments=[],
    )
    db.add(db_task)
    db.commit()
    db.refresh(db_task)

    logger.info(f"Task created successfully: id={db_task.id}")
    return db_task


@app.patch("/api/tasks/{task_id}", response_model=schemas.Task)
def update_task(
    task_id: int,
    task_update: schemas.TaskUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """
    Partially update a task (requires Owner/Editor).

    Moving a task to another project requires Owner/Editor on both projects,
    and its category (if any) must belong to the destination.
    """
    logger.debug(f"User {identity.user_id} updating task {task_id}")

    task = _get_task_or_404(db, task_id)
    project = get_project_or_404(db, task.project_id)
    require_edit(project, identity)

    update_data = task_update.model_dump(exclude_unset=True)
    _reject_nulls(update_data, ("project_id", "title", "priority", "status", "assigned_to"))

    target_project = project
    if "project_id" in update_data and update_data["project_id"] != task.project_id:
        target_project = _referenced_project(db, update_data["project_id"])
        require_edit(target_project, identity)
        logger.debug(f"Task {task_id} moving from project {project.id} to {target_project.id}")

    category_id = update_data.get("category_id", task.category_id)
    if category_id is not None and (
        "category_id" in update_data or target_project.id != task.project_id
    ):
        update_data["category_name"] = _resolve_category(db, category_id, target_project.id).category_name
    elif "category_id" in update_data:
        update_data["category_name"] = None

    if "assigned_to" in update_data:
        update_data["assigned_to"] = _validate_assignees(db, target_project, update_data["assigned_to"])
    elif target_project.id != task.project_id:
        _validate_assignees(db, target_project, task.assigned_to or [])

    start_date = update_data.get("start_date", task.start_date)
    end_date = update_data.get("end_date", task.end_date)
    if not is_date_range_valid(start_date, end_date):
        raise ValidationError("startDate must not be after endDate")

    for key, value in update_data.items():
        setattr(task, key, value)

    db.commit()
    db.refresh(task)

    logger.info(f"Task {task_id} updated by user {identity.user_id}: {sorted(update_data)}")
    return task


@app.delete("/api/tasks/{task_id}")
def delete_task(
    task_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Delete task (requires Owner/Editor on its project)."""
    logger.debug(f"User {identity.user_id} deleting task {task_id}")

    task = _get_task_or_404(db, task_id)
    require_edit(get_project_or_404(db, task.project_id), identity)

    db.delete(task)
    db.commit()

    logger.info(f"Task {task_id} deleted by user {identity.user_id}")
    return {"message": "Task deleted.", "id": task_id}


# ============== Comments ==============

@app.get("/api/tasks/{task_id}/comments", response_model=List[schemas.Comment])
def list_comments(
    task_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """List comments for a task, oldest first."""
    task = _get_task_or_404(db, task_id)
    require_view(get_project_or_404(db, task.project_id), identity)
    return task.comments or []


@app.post("/api/tasks/{task_id}/comments", response_model=schemas.Comment, status_code=status.HTTP_201_CREATED)
def create_comment(
    task_id: int,
    comment: schemas.CommentCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Append a comment to a task (requires Owner/Editor). The author is the caller."""
    logger.debug(f"User {identity.user_id} creating comment on task {task_id}")

    task = _get_task_or_404(db, task_id)
    require_edit(get_project_or_404(db, task.project_id), identity)

    new_comment = {
        "author_id": identity.user_id,
        "content": comment.content,
        "created_at": utc_now().isoformat(),
    }
    # Reassign rather than mutate so the JSON column is flagged dirty
    task.comments = list(task.comments or []) + [new_comment]
    db.commit()

    logger.info(f"Comment added to task {task_id} by user {identity.user_id}")
    return new_comment


def run() -> None:
    """Serve the API with uvicorn; HOST and PORT override the bind address."""
    import uvicorn

    uvicorn.run(app, host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", "8000")))


if __name__ == "__main__":
    run()
