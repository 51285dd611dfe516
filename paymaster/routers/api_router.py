from fastapi import APIRouter
from paymaster.routers import payroll, loans

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(payroll.router, tags=["Payroll"])
api_router.include_router(loans.router, tags=["Loans"])
