from fastapi import APIRouter
from app.api.v1.auth import routes as auth
from app.api.v1.labs import routes as labs
from app.api.v1.bookings import routes as bookings

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(labs.router)
api_router.include_router(bookings.router)
