"""Shared router dependencies."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ctms.database import get_db
from ctms.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


DbDep = Annotated[AsyncSession, Depends(get_db)]
ServicesDep = Annotated[Services, Depends(get_services)]
