from fastapi import APIRouter, HTTPException, Depends
from globalconnect.config import logger, categories_collection
from globalconnect.core.dates import utcnow
from globalconnect.models.category_model import CategoryCreate
from globalconnect.schemas.common import serialize_document, list_serialize_documents
from globalconnect.routers.dependencies import require_admin, to_object_id

router = APIRouter()


@router.get("/all")
async def get_active_categories():
    categories = categories_collection.find({"active": True}).sort("name", 1)
    return {"message": "Categories retrieved successfully", "data": list_serialize_documents(categories)}


@router.get("/all-admin")
async def get_all_categories(admin: dict = Depends(require_admin)):
    categories = categories_collection.find({}).sort("name", 1)
    return {"message": "Categories retrieved successfully", "data": list_serialize_documents(categories)}


@router.post("/create", status_code=201)
async def create_category(body: CategoryCreate, admin: dict = Depends(require_admin)):
    if categories_collection.find_one({"name": body.name}):
        raise HTTPException(status_code=400, detail="Category already exists")

    now = utcnow()
    category = {
        "name": body.name,
        "active": True,
        "fields": [field.model_dump() for field in body.fields],
        "createdAt": now,
        "updatedAt": now,
    }
    category["_id"] = categories_collection.insert_one(category).inserted_id
    logger.info(f"Admin {admin['_id']} created category {body.name}")
    return {"message": "Category created successfully", "data": serialize_document(category)}


@router.put("/status/{category_id}")
async def toggle_category_status(category_id: str, admin: dict = Depends(require_admin)):
    category = categories_collection.find_one({"_id": to_object_id(category_id, "category ID")})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    active = not category.get("active", True)
    categories_collection.update_one({"_id": category["_id"]}, {"$set": {"active": active, "updatedAt": utcnow()}})
    logger.info(f"Admin {admin['_id']} set category {category['name']} active={active}")
    return {"message": f"Category {'activated' if active else 'deactivated'} successfully", "active": active}


@router.delete("/delete/{category_id}")
async def delete_category(category_id: str, admin: dict = Depends(require_admin)):
    result = categories_collection.delete_one({"_id": to_object_id(category_id, "category ID")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    logger.info(f"Admin {admin['_id']} deleted category {category_id}")
    return {"message": "Category deleted successfully"}
