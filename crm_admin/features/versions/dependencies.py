"""
Release-management dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends

from crm_admin.core.store.base import Store
from crm_admin.core.store.dependencies import get_store
from crm_admin.features.versions.service import VersionService


def get_version_service(store: Annotated[Store, Depends(get_store)]) -> VersionService:
    return VersionService(store)
