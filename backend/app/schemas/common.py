"""Acknowledgement shapes shared by the mutation endpoints."""
from typing import Optional
from pydantic import BaseModel

# Largest value an int4 column holds on PostgreSQL.
MAX_INT4 = 2_147_483_647


class SuccessOut(BaseModel):
    success: bool = True
    message: Optional[str] = None
