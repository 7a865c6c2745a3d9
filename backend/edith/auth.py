"""Operator identity dependency for the study execution API."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status

from . import schemas

# purpose: resolve the acting operator from headers set by the upstream identity gateway
# outputs: OperatorContext passed to services for attribution
# status: active


def get_current_operator(
    x_operator_id: Optional[str] = Header(default=None),
    x_operator_name: Optional[str] = Header(default=None),
    x_operator_position: Optional[str] = Header(default=None),
) -> schemas.OperatorContext:
    if x_operator_id is None or not x_operator_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Operator identity required",
        )
    return schemas.OperatorContext(
        id=x_operator_id.strip(),
        name=x_operator_name,
        position=x_operator_position,
    )
