"""Liveness and database connectivity checks."""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.services import storage

router = APIRouter()


@router.get("")
def health_check():
    return {"status": "ok"}


@router.get("/db")
def database_check(db: Optional[Session] = Depends(get_db)):
    return storage.check_connection(db)
