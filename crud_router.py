from typing import Type

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from plant import Collection, Plant


def get_plant(request: Request) -> Plant:
    return request.app.state.plant


def make_collection_router(
    attr: str,
    prefix: str,
    label: str,
    Create: Type[BaseModel],
    Update: Type[BaseModel],
    Out: Type[BaseModel],
) -> APIRouter:
    """
    為 Plant 上的某個集合產生 CRUD router：
    - GET    /api/{prefix}            : 清單（含 loading / error）
    - GET    /api/{prefix}/{id}       : 單筆
    - POST   /api/{prefix}            : 新增
    - PUT    /api/{prefix}/{id}       : 修改（只送有變的欄位）
    - DELETE /api/{prefix}/{id}       : 刪除
    """
    router = APIRouter(prefix=f"/api/{prefix}", tags=[prefix])

    def collection(plant: Plant = Depends(get_plant)) -> Collection:
        return getattr(plant, attr)

    @router.get("")
    async def list_items(c: Collection = Depends(collection)):
        return {"items": c.items, "loading": c.loading, "error": c.error}

    @router.get("/{item_id}", response_model=Out)
    async def get_item(item_id: str, c: Collection = Depends(collection)):
        item = c.get(item_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"{label}不存在")
        return item

    @router.post("", response_model=Out, status_code=status.HTTP_201_CREATED)
    async def create_item(payload: Create, c: Collection = Depends(collection)):
        return await c.create(payload)

    @router.put("/{item_id}", response_model=Out)
    async def update_item(item_id: str, payload: Update, c: Collection = Depends(collection)):
        return await c.update(item_id, payload)

    @router.delete("/{item_id}")
    async def delete_item(item_id: str, c: Collection = Depends(collection)):
        await c.delete(item_id)
        return {"ok": True}

    return router
