from fastapi import APIRouter, HTTPException, Depends
from globalconnect.config import logger, privacy_policies_collection, terms_conditions_collection
from globalconnect.core.dates import utcnow, as_naive_utc
from globalconnect.models.policy_model import PolicyUpsert
from globalconnect.schemas.common import serialize_document
from globalconnect.routers.dependencies import require_admin

router = APIRouter()


def _get_document(collection, label: str) -> dict:
    document = collection.find_one({})
    if not document:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return {"data": serialize_document(document)}


def _upsert_document(collection, body: PolicyUpsert, label: str, admin: dict) -> dict:
    now = utcnow()
    collection.update_one(
        {},
        {"$set": {"content": body.content, "effectiveDate": as_naive_utc(body.effectiveDate) or now, "updatedAt": now}},
        upsert=True,
    )
    logger.info(f"Admin {admin['_id']} updated {label}")
    return {"message": f"{label} saved successfully", "data": serialize_document(collection.find_one({}))}


def _delete_document(collection, label: str, admin: dict) -> dict:
    result = collection.delete_many({})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    logger.info(f"Admin {admin['_id']} deleted {label}")
    return {"message": f"{label} deleted successfully"}


@router.get("/privacy-policy")
async def get_privacy_policy():
    return _get_document(privacy_policies_collection, "Privacy policy")


@router.post("/privacy-policy")
async def save_privacy_policy(body: PolicyUpsert, admin: dict = Depends(require_admin)):
    return _upsert_document(privacy_policies_collection, body, "Privacy policy", admin)


@router.delete("/privacy-policy")
async def delete_privacy_policy(admin: dict = Depends(require_admin)):
    return _delete_document(privacy_policies_collection, "Privacy policy", admin)


@router.get("/terms-conditions")
async def get_terms_conditions():
    return _get_document(terms_conditions_collection, "Terms and conditions")


@router.post("/terms-conditions")
async def save_terms_conditions(body: PolicyUpsert, admin: dict = Depends(require_admin)):
    return _upsert_document(terms_conditions_collection, body, "Terms and conditions", admin)


@router.delete("/terms-conditions")
async def delete_terms_conditions(admin: dict = Depends(require_admin)):
    return _delete_document(terms_conditions_collection, "Terms and conditions", admin)
