"""
Demo data: the permission catalogue, four roles, four departments and
six users.

Loaded on startup into an empty store when SEED_DEMO_DATA is set, and by
scripts/seed_database.py. Denormalized fields and cached counters are
derived here the same way the service derives them.

Demo logins (email or employee id):
    admin@company.com / admin123        Super Administrator
    lisi@company.com / password123      Department Admin, Technology
    zhangsan@company.com / password123  Developer
"""
from datetime import timedelta

from starlette.concurrency import run_in_threadpool

from crm_admin.core import timeutils
from crm_admin.core.store.base import Store
from crm_admin.features.auth.passwords import hash_password
from crm_admin.features.members.models import Department, Role, User
from crm_admin.features.members.propagation import PropagationEngine
from crm_admin.features.permissions.access import PermissionSet
from crm_admin.features.permissions.models import Permission
from crm_admin.utils import get_logger


log = get_logger(__name__)


# (id, name, type, parent_id, level), in display order
PERMISSIONS = [
    ("system", "System Management", "menu", None, 1),
    ("user", "User Management", "menu", "system", 2),
    ("user.read", "View Users", "button", "user", 3),
    ("user.create", "Create Users", "button", "user", 3),
    ("user.update", "Edit Users", "button", "user", 3),
    ("user.delete", "Delete Users", "button", "user", 3),
    ("role", "Role Management", "menu", "system", 2),
    ("role.read", "View Roles", "button", "role", 3),
    ("role.create", "Create Roles", "button", "role", 3),
    ("role.update", "Edit Roles", "button", "role", 3),
    ("role.delete", "Delete Roles", "button", "role", 3),
    ("dept", "Department Management", "menu", "system", 2),
    ("dept.read", "View Departments", "button", "dept", 3),
    ("dept.create", "Create Departments", "button", "dept", 3),
    ("dept.update", "Edit Departments", "button", "dept", 3),
    ("dept.delete", "Delete Departments", "button", "dept", 3),
    ("business", "Business Management", "menu", None, 1),
    ("project", "Project Management", "menu", "business", 2),
    ("project.read", "View Projects", "button", "project", 3),
    ("project.create", "Create Projects", "button", "project", 3),
    ("project.update", "Edit Projects", "button", "project", 3),
]

ROLES = [
    {
        "id": "role_1",
        "name": "Super Administrator",
        "code": "SUPER_ADMIN",
        "description": "Full access to every feature and system setting",
        "permissions": ["*"],
        "level": 1,
        "age_days": 365,
    },
    {
        "id": "role_2",
        "name": "Department Admin",
        "code": "DEPT_ADMIN",
        "description": "Manages users and resources of their own department",
        "permissions": ["user.read", "user.create", "user.update", "dept.read", "role.read", "project.read"],
        "level": 2,
        "age_days": 365,
    },
    {
        "id": "role_3",
        "name": "Member",
        "code": "USER",
        "description": "Basic access to view colleagues and projects",
        "permissions": ["user.read", "project.read"],
        "level": 3,
        "age_days": 365,
    },
    {
        "id": "role_4",
        "name": "Developer",
        "code": "DEVELOPER",
        "description": "Access to development and project features",
        "permissions": ["user.read", "project.read", "project.create", "project.update"],
        "level": 2,
        "age_days": 200,
    },
]

DEPARTMENTS = [
    {
        "id": "dept_1",
        "name": "Technology",
        "code": "TECH",
        "description": "Product development and system maintenance",
        "parent_id": None,
        "manager_id": "user_2",
        "level": 1,
        "age_days": 365,
    },
    {
        "id": "dept_2",
        "name": "Product",
        "code": "PROD",
        "description": "Product planning and requirements analysis",
        "parent_id": None,
        "manager_id": "user_3",
        "level": 1,
        "age_days": 365,
    },
    {
        "id": "dept_3",
        "name": "Design",
        "code": "DESIGN",
        "description": "Product UI and UX design",
        "parent_id": "dept_2",
        "manager_id": "user_4",
        "level": 2,
        "age_days": 300,
    },
    {
        "id": "dept_4",
        "name": "Human Resources",
        "code": "HR",
        "description": "People operations",
        "parent_id": None,
        "manager_id": "user_5",
        "level": 1,
        "age_days": 200,
    },
]

USERS = [
    {
        "id": "user_0",
        "employee_id": "U000",
        "name": "Admin",
        "email": "admin@company.com",
        "phone": "13800000000",
        "position": "System Administrator",
        "department_id": "dept_1",
        "role_id": "role_1",
        "status": "active",
        "report_to_id": None,
        "password": "admin123",
        "age_days": 700,
    },
    {
        "id": "user_1",
        "employee_id": "U001",
        "name": "Zhang San",
        "email": "zhangsan@company.com",
        "phone": "13812345678",
        "position": "Senior Frontend Engineer",
        "department_id": "dept_1",
        "role_id": "role_4",
        "status": "active",
        "report_to_id": "user_2",
        "password": "password123",
        "age_days": 300,
    },
    {
        "id": "user_2",
        "employee_id": "U002",
        "name": "Li Si",
        "email": "lisi@company.com",
        "phone": "13987654321",
        "position": "Technology Director",
        "department_id": "dept_1",
        "role_id": "role_2",
        "status": "active",
        "report_to_id": "user_3",
        "password": "password123",
        "age_days": 500,
    },
    {
        "id": "user_3",
        "employee_id": "U003",
        "name": "Wang Wu",
        "email": "wangwu@company.com",
        "phone": "13555666777",
        "position": "Product Director",
        "department_id": "dept_2",
        "role_id": "role_2",
        "status": "active",
        "report_to_id": None,
        "password": "password123",
        "age_days": 600,
    },
    {
        "id": "user_4",
        "employee_id": "U004",
        "name": "Zhao Liu",
        "email": "zhaoliu@company.com",
        "phone": "13666777888",
        "position": "UI Designer",
        "department_id": "dept_3",
        "role_id": "role_3",
        "status": "pending",
        "report_to_id": "user_3",
        "password": "password123",
        "age_days": 10,
    },
    {
        "id": "user_5",
        "employee_id": "U005",
        "name": "Qian Qi",
        "email": "qianqi@company.com",
        "phone": "13777888999",
        "position": "HR Director",
        "department_id": "dept_4",
        "role_id": "role_2",
        "status": "active",
        "report_to_id": None,
        "password": "password123",
        "age_days": 400,
    },
]


async def seed_demo_data(store: Store) -> None:
    """Insert the demo records in one transaction and derive every cached field."""
    now = timeutils.utcnow()

    def ago(days: int):
        return now - timedelta(days=days)

    hashes = {data["id"]: await run_in_threadpool(hash_password, data["password"]) for data in USERS}

    async with store.transaction() as db:
        for index, (permission_id, name, type_, parent_id, level) in enumerate(PERMISSIONS):
            await db.permissions.add(Permission(
                id=permission_id,
                name=name,
                type=type_,
                parent_id=parent_id,
                level=level,
                sort_order=index,
            ))

        roles = {}
        for data in ROLES:
            roles[data["id"]] = await db.roles.add(Role(
                id=data["id"],
                name=data["name"],
                code=data["code"],
                description=data["description"],
                permissions=list(data["permissions"]),
                level=data["level"],
                status="active",
                user_count=0,
                created_at=ago(data["age_days"]),
                updated_at=now,
            ))

        names = {data["id"]: data["name"] for data in USERS}
        departments = {}
        for data in DEPARTMENTS:
            departments[data["id"]] = await db.departments.add(Department(
                id=data["id"],
                name=data["name"],
                code=data["code"],
                description=data["description"],
                parent_id=data["parent_id"],
                manager=names.get(data["manager_id"]),
                manager_id=data["manager_id"],
                level=data["level"],
                status="active",
                member_count=0,
                created_at=ago(data["age_days"]),
                updated_at=now,
            ))

        for data in USERS:
            role = roles[data["role_id"]]
            joined = ago(data["age_days"])
            await db.users.add(User(
                id=data["id"],
                employee_id=data["employee_id"],
                name=data["name"],
                email=data["email"],
                phone=data["phone"],
                avatar="",
                position=data["position"],
                department_id=data["department_id"],
                department=departments[data["department_id"]].name,
                role_id=role.id,
                role=role.name,
                permissions=PermissionSet.from_stored(role.permissions).to_stored(),
                status=data["status"],
                report_to_id=data["report_to_id"],
                report_to=names.get(data["report_to_id"]),
                password_hash=hashes[data["id"]],
                join_date=joined,
                last_login=None,
                created_at=joined,
                updated_at=now,
            ))

        engine = PropagationEngine(db)
        for department_id in departments:
            await engine.refresh_member_count(department_id)
        for role_id in roles:
            await engine.refresh_user_count(role_id)

    log.info(
        f"Seeded {len(PERMISSIONS)} permissions, {len(ROLES)} roles, "
        f"{len(DEPARTMENTS)} departments and {len(USERS)} users"
    )
