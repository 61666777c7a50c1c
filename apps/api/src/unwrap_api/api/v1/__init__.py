from fastapi import APIRouter

from .endpoints import contract, email, gift_cards, health

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(gift_cards.router)
router.include_router(email.router)
router.include_router(contract.router)
