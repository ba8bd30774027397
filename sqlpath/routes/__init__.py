"""
sqlpath/routes/__init__.py
Route registration; everything is mounted under /api by main.py
"""
from fastapi import APIRouter
from sqlpath.routes import auth, progress, catalog, learning, practice, tutor, me, subscription, certificates, admin

router = APIRouter()

# Learner
router.include_router(auth.router)
router.include_router(progress.router)
router.include_router(catalog.router)
router.include_router(learning.router)
router.include_router(practice.router)
router.include_router(tutor.router)
router.include_router(me.router)
router.include_router(subscription.router)
router.include_router(certificates.router)

# Admin console
router.include_router(admin.router)
