from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlmodel import Session

from ..clock import Clock, get_clock
from ..database import get_db
from ..schemas.category import CategoryCreate, CategoryRead, CategoryUpdate
from ..services.category_store import CategoryStore

router = APIRouter()


def get_category_store(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> CategoryStore:
    return CategoryStore(db, clock)


@router.get("/categories", response_model=List[CategoryRead])
def get_categories(store: CategoryStore = Depends(get_category_store)):
    """Get all active categories ordered by name."""
    return store.list_active()


@router.get("/categories/{category_id}", response_model=CategoryRead)
def get_category(category_id: int, store: CategoryStore = Depends(get_category_store)):
    return store.get_by_id(category_id)


@router.post("/categories", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
def create_category(category: CategoryCreate, store: CategoryStore = Depends(get_category_store)):
    return store.create(category)


@router.put("/categories/{category_id}", response_model=CategoryRead)
def update_category(
    category_id: int,
    category_update: CategoryUpdate,
    store: CategoryStore = Depends(get_category_store),
):
    return store.update(category_id, category_update)


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(category_id: int, store: CategoryStore = Depends(get_category_store)):
    """Delete a category; its tasks become uncategorized."""
    store.delete(category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
