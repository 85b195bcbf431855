"""List and group API endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from todolist.api.models import CreateGroupRequest, CreateListRequest, UpdateListRequest
from todolist.factory import get_store
from todolist.models import ListGroup, TodoList

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/lists", response_model=list[TodoList])
async def list_lists() -> list[TodoList]:
    """All lists, the default list included."""
    return get_store().lists


@router.post("/lists", response_model=TodoList, status_code=201)
async def create_list(request: CreateListRequest) -> TodoList:
    todo_list = get_store().create_list(
        request.title,
        icon=request.icon,
        color=request.color,
        group_id=request.group_id,
    )
    if todo_list is None:
        raise HTTPException(status_code=422, detail="List title must not be empty")
    return todo_list


@router.patch("/lists/{list_id}", response_model=TodoList)
async def update_list(list_id: str, request: UpdateListRequest) -> TodoList:
    fields = request.model_fields_set
    if "title" in fields and not (request.title or "").strip():
        raise HTTPException(status_code=422, detail="List title must not be empty")

    def mutate(todo_list: TodoList) -> None:
        if request.title:
            todo_list.title = request.title.strip()
        if request.icon:
            todo_list.icon = request.icon
        if request.color is not None:
            todo_list.color = request.color
        if "group_id" in fields:
            todo_list.group_id = request.group_id

    todo_list = get_store().update_list(list_id, mutate)
    if todo_list is None:
        raise HTTPException(status_code=404, detail=f"List not found: {list_id}")
    return todo_list


@router.delete("/lists/{list_id}", status_code=204)
async def delete_list(list_id: str) -> None:
    """Delete a list; its tasks move to the default list."""
    try:
        deleted = get_store().delete_list(list_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if not deleted:
        raise HTTPException(status_code=404, detail=f"List not found: {list_id}")
    logger.info(f"[API] Deleted list {list_id}")


@router.get("/groups", response_model=list[ListGroup])
async def list_groups() -> list[ListGroup]:
    return get_store().groups


@router.post("/groups", response_model=ListGroup, status_code=201)
async def create_group(request: CreateGroupRequest) -> ListGroup:
    group = get_store().create_group(request.title)
    if group is None:
        raise HTTPException(status_code=422, detail="Group title must not be empty")
    return group


@router.post("/groups/{group_id}/toggle-collapsed", response_model=ListGroup)
async def toggle_group_collapsed(group_id: str) -> ListGroup:
    group = get_store().toggle_group_collapsed(group_id)
    if group is None:
        raise HTTPException(status_code=404, detail=f"Group not found: {group_id}")
    return group


@router.delete("/groups/{group_id}", status_code=204)
async def delete_group(group_id: str) -> None:
    """Delete a group; its lists become ungrouped."""
    if not get_store().delete_group(group_id):
        raise HTTPException(status_code=404, detail=f"Group not found: {group_id}")
