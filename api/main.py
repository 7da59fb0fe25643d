import logging
from contextlib import asynccontextmanager
from typing import Optional

import jsonschema
from bson.objectid import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from tasky_mongodb.connect_db import get_client, get_database
from tasky_mongodb.create_collections import ensure_collections
from tasky_mongodb.schema import DEFAULT_SPECS, TASKS_SPEC, USERS_SPEC, CollectionSpec

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("tasky.api")

API_VERSION = "1.0.0"
MAX_PAGINATION_LIMIT = 30


def _open_database():
    client = get_client()
    db = get_database(client)
    report = ensure_collections(db, DEFAULT_SPECS)
    for failure in report.failures:
        logger.error("Bootstrap: %s", failure.error)
    return client, db


@asynccontextmanager
async def lifespan(app: FastAPI):
    # pymongo blocks; keep the ping and the bootstrap off the event loop
    client, app.state.db = await run_in_threadpool(_open_database)
    try:
        yield
    finally:
        client.close()


app = FastAPI(title="Tasky API", version=API_VERSION, lifespan=lifespan)
api = APIRouter(prefix="/api/v1")


def db_conn(request: Request):
    return request.app.state.db


# ======== Schemas ========
class UserIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1)


class UserOut(BaseModel):
    id: str
    name: str
    email: str


class TaskIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    completed: bool = False
    userId: str


class TaskUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    completed: bool = False


class TaskOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    completed: bool = False
    userId: str


# ======== Utility helpers ========
def _object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid id")


_JSON_SCHEMA_CACHE: dict = {}


def _validate_against_spec(spec: CollectionSpec, doc: dict) -> None:
    if spec.name not in _JSON_SCHEMA_CACHE:
        _JSON_SCHEMA_CACHE[spec.name] = spec.rule().to_jsonschema()
    try:
        jsonschema.validate(instance=doc, schema=_JSON_SCHEMA_CACHE[spec.name])
    except jsonschema.ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Schema validation error: {e.message}")


def _format_user(doc: dict) -> UserOut:
    return UserOut(id=str(doc["_id"]), name=doc.get("name", ""), email=doc.get("email", ""))


def _format_task(doc: dict) -> TaskOut:
    return TaskOut(
        id=str(doc["_id"]),
        title=doc.get("title", ""),
        description=doc.get("description"),
        completed=bool(doc.get("completed", False)),
        userId=str(doc.get("userId", "")),
    )


def _task_document(payload: TaskIn) -> dict:
    doc = payload.model_dump(exclude_none=True)
    _validate_against_spec(TASKS_SPEC, doc)
    doc["userId"] = ObjectId(doc["userId"])
    return doc


# ======== Probes ========
@app.get("/", response_class=PlainTextResponse)
def index():
    return "Welcome to Tasky API"


@api.get("/health", tags=["Health"])
def health():
    return {"status": "UP", "version": API_VERSION}


@api.get("/healthz", tags=["Health"])
def liveness():
    return {"status": "ALIVE"}


@api.get("/readyz", tags=["Health"])
def readiness(db=Depends(db_conn)):
    try:
        db.client.admin.command("ping")
    except PyMongoError as e:
        logger.error("MongoDB not connected: %s", e)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "DOWN", "error": "MongoDB not connected"},
        )
    return {"status": "READY"}


# ======== Users CRUD ========
@api.get("/users", tags=["Users"])
def list_users(db=Depends(db_conn)):
    users = [_format_user(doc) for doc in db[USERS_SPEC.name].find({})]
    return {"users": users, "count": len(users)}


@api.post("/users", status_code=status.HTTP_201_CREATED, tags=["Users"])
def create_user(payload: UserIn, db=Depends(db_conn)):
    doc = payload.model_dump()
    _validate_against_spec(USERS_SPEC, doc)
    result = db[USERS_SPEC.name].insert_one(doc)
    logger.info("User created: %s", result.inserted_id)
    return {"message": "User created successfully", "userId": str(result.inserted_id)}


@api.get("/users/{user_id}", response_model=UserOut, tags=["Users"])
def get_user(user_id: str, db=Depends(db_conn)):
    doc = db[USERS_SPEC.name].find_one({"_id": _object_id(user_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="User not found")
    return _format_user(doc)


@api.put("/users/{user_id}", tags=["Users"])
def update_user(user_id: str, payload: UserIn, db=Depends(db_conn)):
    oid = _object_id(user_id)
    doc = payload.model_dump()
    _validate_against_spec(USERS_SPEC, doc)
    result = db[USERS_SPEC.name].update_one({"_id": oid}, {"$set": doc})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "User updated successfully"}


@api.delete("/users/{user_id}", tags=["Users"])
def delete_user(user_id: str, db=Depends(db_conn)):
    result = db[USERS_SPEC.name].delete_one({"_id": _object_id(user_id)})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "User deleted successfully"}


# ======== Tasks CRUD ========
@api.get("/tasks", tags=["Tasks"])
def list_tasks(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    db=Depends(db_conn),
):
    limit = min(limit, MAX_PAGINATION_LIMIT)
    collection = db[TASKS_SPEC.name]
    total = collection.count_documents({})
    cursor = collection.find({}).sort("_id", 1).skip((page - 1) * limit).limit(limit)
    return {
        "tasks": [_format_task(doc) for doc in cursor],
        "page": page,
        "limit": limit,
        "total": total,
    }


@api.post("/tasks", status_code=status.HTTP_201_CREATED, tags=["Tasks"])
def create_task(payload: TaskIn, db=Depends(db_conn)):
    result = db[TASKS_SPEC.name].insert_one(_task_document(payload))
    logger.info("Task created: %s", result.inserted_id)
    return {"message": "Task created successfully", "taskId": str(result.inserted_id)}


@api.get("/tasks/user/{user_id}", response_model=list[TaskOut], tags=["Tasks"])
def list_user_tasks(user_id: str, db=Depends(db_conn)):
    cursor = db[TASKS_SPEC.name].find({"userId": _object_id(user_id)})
    return [_format_task(doc) for doc in cursor]


@api.get("/tasks/{task_id}", response_model=TaskOut, tags=["Tasks"])
def get_task(task_id: str, db=Depends(db_conn)):
    doc = db[TASKS_SPEC.name].find_one({"_id": _object_id(task_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Task not found")
    return _format_task(doc)


@api.put("/tasks/{task_id}", tags=["Tasks"])
def update_task(task_id: str, payload: TaskUpdate, db=Depends(db_conn)):
    oid = _object_id(task_id)
    collection = db[TASKS_SPEC.name]
    current = collection.find_one({"_id": oid})
    if not current:
        raise HTTPException(status_code=404, detail="Task not found")
    changes = payload.model_dump()
    # merge and validate; the owner is never reassigned here
    merged = {k: v for k, v in current.items() if k != "_id"}
    merged.update(changes)
    merged["userId"] = str(merged.get("userId", ""))
    _validate_against_spec(TASKS_SPEC, {k: v for k, v in merged.items() if v is not None})
    update = {"$set": {k: v for k, v in changes.items() if v is not None}}
    if changes["description"] is None:
        update["$unset"] = {"description": ""}
    result = collection.update_one({"_id": oid}, update)
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"message": "Task updated successfully"}


@api.delete("/tasks/{task_id}", tags=["Tasks"])
def delete_task(task_id: str, db=Depends(db_conn)):
    result = db[TASKS_SPEC.name].delete_one({"_id": _object_id(task_id)})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"message": "Task deleted successfully"}


app.include_router(api)
