"""
Firmware upload endpoint.

POST /api/v1/upload takes the firmware file plus ECU metadata as
multipart form fields, creates the scan and starts the binary pipeline
in the background.
"""
import base64
import hashlib
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from scanguard.api.v1.errors import domain_error, internal_error
from scanguard.core.auth import APIClient, require_role
from scanguard.core.config import settings
from scanguard.core.database import get_db, get_session_factory
from scanguard.schemas.analysis import BinarySource
from scanguard.schemas.scan import ScanCreate, ScanMetadata, ScanResponse
from scanguard.services import pipeline
from scanguard.services.analysis_service import run_analysis
from scanguard.services.scan_service import ScanService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ScanResponse, status_code=status.HTTP_201_CREATED)
async def upload_firmware(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    ecu_name: str = Form(..., description="ECU name"),
    ecu_type: str = Form("Other", description="Engine, Transmission, BCM, TCU, ADAS, Infotainment, Gateway or Other"),
    version: Optional[str] = Form(None, description="Firmware version"),
    manufacturer: Optional[str] = Form(None, description="ECU manufacturer"),
    platform: Optional[str] = Form(None, description="Hardware platform"),
    architecture: str = Form("Unknown", description="ARM, PowerPC, TriCore, x86 or Unknown"),
    compliance_frameworks: Optional[str] = Form(None, description="Comma-separated framework names"),
    deep_analysis: bool = Form(False, description="Request a deep analysis pass"),
    priority: Optional[str] = Form(None, description="low, medium, high or critical"),
    notes: Optional[str] = Form(None, description="Free-text notes"),
    client: APIClient = Depends(require_role("operator")),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """
    Upload a firmware image (or source file) and start its analysis.

    Source-like files (.c, .h, .cpp, .hpp, .arxml, .xml, .txt, .json) are
    analyzed as text, anything else as a binary image.
    """
    try:
        content = await file.read()

        if len(content) > settings.MAX_UPLOAD_SIZE:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File size exceeds maximum allowed size of {settings.MAX_UPLOAD_SIZE} bytes"
            )
        if not content:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Uploaded file is empty"
            )

        file_name = file.filename or "firmware.bin"
        scan_in = ScanCreate(
            ecu_name=ecu_name,
            ecu_type=ecu_type,
            version=version,
            manufacturer=manufacturer,
            platform=platform,
            architecture=architecture,
            file_name=file_name,
            file_size=len(content),
            file_hash=hashlib.sha256(content).hexdigest(),
            compliance_frameworks=[f for f in (compliance_frameworks or "").split(",")],
            deep_analysis=deep_analysis,
            metadata=ScanMetadata(priority=priority, notes=notes),
        )

        service = ScanService(db)
        scan = service.create_scan(scan_in)
        scan = pipeline.claim_scan(db, scan.id)

        source = BinarySource(file_name=file_name, content_base64=base64.b64encode(content).decode("ascii"))
        background_tasks.add_task(run_analysis, session_factory, scan.id, source, True)

        logger.info(
            f"Firmware uploaded: scan_id={scan.id}, filename='{file_name}', "
            f"size={len(content)} bytes, ecu_name='{scan.ecu_name}'"
        )
        return ScanResponse.model_validate(scan)
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        db.rollback()
        raise internal_error("upload firmware", e)
