from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase

from tripsplit.db.mongo import get_db
from tripsplit.services.blob_store import BlobStore

router = APIRouter()


@router.get("/{path:path}")
async def get_blob(
    path: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Serve a stored slip image"""
    data, content_type = await BlobStore(db).download(path)
    return Response(
        content=data,
        media_type=content_type,
        headers={"Cache-Control": "private, max-age=86400"},
    )
