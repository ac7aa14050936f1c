"""
REST routes emulating the Realtime Database endpoints used by the worker.

    GET /projects/.json
    GET|PUT /projects/{project_id}/datamodel.json
    PUT /projects/{project_id}/changes/{key}.json
    GET /projects/{project_id}/changes.json?orderBy="$key"&limitToLast=N
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from .config import Settings
from .store import JsonStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["SceneSync Dev Store"])

KEY_ORDERING = '"$key"'


# --- Dependencies ---


def get_store(request: Request) -> JsonStore:
    """Get the JSON store from app state."""
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    """Get settings from app state."""
    return request.app.state.settings


async def read_json_body(request: Request) -> Any:
    """Parse the request body the way the database does."""
    raw = await request.body()
    try:
        return json.loads(raw) if raw.strip() else None
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid data; couldn't parse JSON object")


# --- Routes ---


@router.get("/projects/.json")
async def get_projects(store: JsonStore = Depends(get_store)) -> Any:
    return await store.get("projects")


@router.get("/projects/{project_id}/datamodel.json")
async def get_datamodel(project_id: str, store: JsonStore = Depends(get_store)) -> Any:
    return await store.get(f"projects/{project_id}/datamodel")


@router.put("/projects/{project_id}/datamodel.json")
async def put_datamodel(
    project_id: str,
    body: Any = Depends(read_json_body),
    store: JsonStore = Depends(get_store),
) -> Any:
    result = await store.put(f"projects/{project_id}/datamodel", body)
    logger.info("DataModel replaced", extra={"project_id": project_id})
    return result


@router.put("/projects/{project_id}/changes/{key}.json")
async def put_change(
    project_id: str,
    key: str,
    body: Any = Depends(read_json_body),
    store: JsonStore = Depends(get_store),
) -> Any:
    result = await store.put(f"projects/{project_id}/changes/{key}", body)
    logger.info("Change batch stored", extra={"project_id": project_id, "key": key})
    return result


@router.get("/projects/{project_id}/changes.json")
async def get_changes(
    project_id: str,
    order_by: str | None = Query(None, alias="orderBy"),
    limit_to_last: int | None = Query(None, alias="limitToLast", ge=1),
    store: JsonStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> Any:
    path = f"projects/{project_id}/changes"
    if order_by is None:
        if limit_to_last is not None:
            raise HTTPException(status_code=400, detail="orderBy must be defined when other query parameters are defined")
        return await store.get(path)
    if order_by != KEY_ORDERING:
        raise HTTPException(status_code=400, detail=f"Only orderBy={KEY_ORDERING} is supported")
    if limit_to_last is not None and limit_to_last > settings.max_query_limit:
        raise HTTPException(status_code=400, detail=f"limitToLast must be at most {settings.max_query_limit}")
    return await store.last_children(path, limit_to_last)
