"""
sqlpath/routes/certificates.py
Issued certificates and claiming a new one
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.config.feature_flags import feature_flags
from sqlpath.database import get_db
from sqlpath.errors import ErrorCode, ForbiddenError
from sqlpath.orm.user import User
from sqlpath.rbac import get_current_user
from sqlpath.schemas.progress import CertificateClaimRequest, StandardResponse, ok
from sqlpath.services.certificate_service import CertificateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/certificates", tags=["Certificates"])


@router.get("", response_model=StandardResponse)
async def list_certificates(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    certificates = await CertificateService(db).list_certificates(current_user.id)
    return ok("Certificates", certificates=[c.to_dict() for c in certificates])


@router.post("/claim", response_model=StandardResponse)
async def claim_certificate(
    request: CertificateClaimRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not feature_flags.FEATURE_CERTIFICATES:
        raise ForbiddenError("Certificates are currently disabled", code=ErrorCode.FORBIDDEN)

    certificate = await CertificateService(db).claim_certificate(current_user, request.kind, request.entity_id)
    return ok("Certificate issued", certificate=certificate.to_dict())
