from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.learning import catalog
from medlearn.learning.dependencies import get_db, get_current_user_id
from medlearn.learning.models import (
    FacultyCreate, ModuleCreate, ModuleUpdate, PathologyCreate, PathologyUpdate
)

module_router = APIRouter(tags=["Modules"])
pathology_router = APIRouter(tags=["Pathologies"])
faculty_router = APIRouter(tags=["Faculty"])

# ==================== MODULES ====================

@module_router.get("/")
async def list_modules(db: AsyncIOMotorDatabase = Depends(get_db)):
    return {"success": True, "message": "Modules fetched successfully", "data": await catalog.list_modules(db)}

@module_router.get("/with-pathology-count")
async def modules_with_pathology_count(db: AsyncIOMotorDatabase = Depends(get_db)):
    modules = await catalog.list_modules_with_counts(db)
    return {"success": True, "message": "Modules with pathology count fetched", "data": modules}

@module_router.get("/with-session-count")
async def modules_with_session_count(db: AsyncIOMotorDatabase = Depends(get_db)):
    modules = await catalog.list_modules_with_counts(db, include_sessions=True)
    return {"success": True, "message": "Modules with session count fetched", "data": modules}

@module_router.get("/{module_id}")
async def get_module(module_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return {"success": True, "message": "Module fetched successfully", "data": await catalog.get_module(db, module_id)}

@module_router.get("/{module_id}/pathologies")
async def pathologies_by_module(module_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    data = await catalog.get_pathologies_by_module(db, module_id)
    return {"success": True, "message": "Got pathologies by module successfully", "data": data}

@module_router.post("/")
async def create_module(
    payload: ModuleCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    module = await catalog.create_module(db, payload.model_dump())
    return {"success": True, "message": "Module created successfully", "data": module}

@module_router.put("/{module_id}")
async def update_module(
    module_id: str,
    payload: ModuleUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    module = await catalog.update_module(db, module_id, payload.model_dump())
    return {"success": True, "message": "Module updated successfully", "data": module}

# ==================== PATHOLOGIES ====================

@pathology_router.get("/")
async def list_pathologies(db: AsyncIOMotorDatabase = Depends(get_db)):
    return {"success": True, "message": "Got all pathologies successfully", "data": await catalog.list_pathologies(db)}

@pathology_router.get("/{pathology_id}")
async def get_pathology(pathology_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    pathology = await catalog.get_pathology(db, pathology_id)
    return {"success": True, "message": "Got pathology successfully", "data": pathology}

@pathology_router.post("/{module_id}")
async def create_pathology(
    module_id: str,
    payload: PathologyCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    pathology = await catalog.create_pathology(db, module_id, payload.model_dump())
    return {"success": True, "message": "Pathology created successfully", "data": pathology}

@pathology_router.put("/{pathology_id}")
async def update_pathology(
    pathology_id: str,
    payload: PathologyUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    pathology = await catalog.update_pathology(db, pathology_id, payload.model_dump())
    return {"success": True, "message": "Pathology updated successfully", "data": pathology}

# ==================== FACULTY ====================

@faculty_router.get("/")
async def list_faculty(db: AsyncIOMotorDatabase = Depends(get_db)):
    return {"success": True, "data": await catalog.list_faculty(db)}

@faculty_router.post("/")
async def create_faculty(
    payload: FacultyCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await catalog.create_faculty(db, payload.model_dump())}
