from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from khata.core.database import get_db
from khata.core.dependencies import get_extractor, get_transcriber
from khata.modules.voice import schemas
from khata.modules.voice.services import LoanInfoExtractor, TranscriptionClient, VoiceService

router = APIRouter(prefix="/voice", tags=["voice"])


@router.post("/transcribe", response_model=schemas.TranscriptionResponse)
async def transcribe_audio(
    file: UploadFile = File(...),
    model: str = Form("scribe"),
    language: str = Form("ur"),
    domain: str = Form("phone-commerce"),
    transcriber: TranscriptionClient = Depends(get_transcriber)
):
    """
    Transcribe a recorded Urdu voice note.

    - 400 for an empty file or one over the size cap
    - Provider errors keep the provider's status code
    """
    content = await file.read()
    return await transcriber.transcribe(
        content,
        filename=file.filename,
        content_type=file.content_type,
        model=model,
        language=language,
        domain=domain,
    )


@router.post("/extract-loan-info", response_model=schemas.ExtractLoanInfoResponse)
async def extract_loan_info(
    data: schemas.ExtractLoanInfoRequest,
    db: AsyncSession = Depends(get_db),
    extractor: LoanInfoExtractor = Depends(get_extractor)
):
    """Prefill the loan form from transcribed text; matches the partner when ownerWallet is given"""
    loan_info = await VoiceService.extract_loan_info(db, extractor, data.text, data.owner_wallet)
    return {"success": True, "loan_info": loan_info}
