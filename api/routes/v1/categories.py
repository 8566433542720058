"""
api/routes/v1/categories.py -- Ownership-scoped category CRUD.

Routes (all require auth):
  GET    /categories        -- list the caller's categories
  POST   /categories        -- create a category; 201
  GET    /categories/{id}   -- one category; 404 missing, 403 not owned
  PATCH  /categories/{id}   -- update name/color/description
  DELETE /categories/{id}   -- soft delete; 204

IDOR guard: every store call passes ctx.user.id; CategoryStore.find_one()
rejects rows owned by someone else with Forbidden.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import CategoryCreate, CategoryResponse, CategoryUpdate
from auth.dependencies import AuthContext, get_auth_context
from categories.models import Category
from categories.store import CategoryStore

router = APIRouter()


def _store(request: Request) -> CategoryStore:
    return request.app.state.category_store


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(request: Request, ctx: AuthContext = Depends(get_auth_context)) -> list[CategoryResponse]:
    return [_to_response(c) for c in _store(request).find_all(ctx.user.id)]


@router.post("/categories", response_model=CategoryResponse, status_code=201)
def create_category(
    request: Request,
    body: CategoryCreate,
    ctx: AuthContext = Depends(get_auth_context),
) -> CategoryResponse:
    created = _store(request).create(
        Category(user_id=ctx.user.id, name=body.name, color=body.color, description=body.description)
    )
    return _to_response(created)


@router.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(request: Request, category_id: str, ctx: AuthContext = Depends(get_auth_context)) -> CategoryResponse:
    return _to_response(_store(request).find_one(category_id, ctx.user.id))


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
def update_category(
    request: Request,
    category_id: str,
    body: CategoryUpdate,
    ctx: AuthContext = Depends(get_auth_context),
) -> CategoryResponse:
    """Only fields present in the body are written; {"description": null} clears it."""
    updated = _store(request).update(category_id, ctx.user.id, **body.model_dump(exclude_unset=True))
    return _to_response(updated)


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(request: Request, category_id: str, ctx: AuthContext = Depends(get_auth_context)) -> Response:
    _store(request).remove(category_id, ctx.user.id)
    return Response(status_code=204)


def _to_response(category: Category) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        name=category.name,
        color=category.color,
        description=category.description,
        user_id=category.user_id,
        created_at=category.created_at or "",
        updated_at=category.updated_at or "",
    )
