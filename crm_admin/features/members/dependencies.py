"""
Member-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends

from crm_admin.core.store.base import Store
from crm_admin.core.store.dependencies import get_store
from crm_admin.features.members.service import MemberService


def get_member_service(store: Annotated[Store, Depends(get_store)]) -> MemberService:
    return MemberService(store)
