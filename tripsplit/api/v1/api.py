from fastapi import APIRouter
from tripsplit.api.v1.endpoints import bills, blobs, debts, friends, payments, trips

api_router = APIRouter()

api_router.include_router(debts.router, prefix="/debts", tags=["debts"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(bills.router, prefix="/bills", tags=["bills"])
api_router.include_router(trips.router, prefix="/trips", tags=["trips"])
api_router.include_router(friends.router, prefix="/friends", tags=["friends"])
api_router.include_router(blobs.router, prefix="/blobs", tags=["blobs"])
