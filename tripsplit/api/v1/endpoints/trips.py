from fastapi import APIRouter, Depends

from tripsplit.core.auth import CurrentUser, get_current_user
from tripsplit.services.trip_service import TripService

router = APIRouter()


@router.delete("/{trip_id}")
async def delete_trip(
    trip_id: str,
    current_user: CurrentUser = Depends(get_current_user)
):
    """Delete a trip together with its bills and payments"""
    deleted = await TripService.delete_trip(trip_id, current_user.id)
    return {"message": "Trip deleted successfully", "deleted": deleted}
