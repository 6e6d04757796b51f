from fastapi import APIRouter
from dental_billing.api.v1.treatments import routes as treatments
from dental_billing.api.v1.receipts import routes as receipts

api_router = APIRouter()
api_router.include_router(treatments.router, prefix="/treatments", tags=["treatments"])
api_router.include_router(receipts.router, prefix="/receipts", tags=["receipts"])
api_router.include_router(receipts.discount_router, prefix="/discount-codes", tags=["discount-codes"])
