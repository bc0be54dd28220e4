from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from typing import Any, Dict, List, Optional
import logging
import re

import httpx
from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta
from openai import AsyncOpenAI, OpenAIError

from khata.core.exceptions import MisconfigurationError, UpstreamError, ValidationError
from khata.modules.partners.models import PartnerLink
from khata.modules.partners.services import PartnerService
from khata.modules.users.services import UserService
from khata.modules.voice import schemas

logger = logging.getLogger(__name__)

UPLIFT_PROVIDER = "uplift-ai"
OPENAI_PROVIDER = "openai"

EXTRACTION_PROMPT = """You are an expert at extracting loan information from Urdu text. Extract the following information:
- Partner/Borrower name (the person receiving the loan)
- Loan amount in PKR (extract only the number)
- Description (reason or details about the loan)
- Loan date (when the loan was given - convert to YYYY-MM-DD format if possible)
- Expected return date (when the loan should be returned - convert to YYYY-MM-DD format if possible)

If any information is missing, leave it as null. Return dates in YYYY-MM-DD format."""

_RELATIVE_DATES = {
    "today": relativedelta(),
    "yesterday": relativedelta(days=-1),
    "tomorrow": relativedelta(days=+1),
    "next week": relativedelta(weeks=+1),
    "next month": relativedelta(months=+1),
}

_IN_N_UNITS = re.compile(r"^in\s+(\d+)\s+(day|week|month)s?$")


def resolve_loan_date(value: Optional[str], today: date) -> Optional[str]:
    """
    ISO date for ``value`` when it is an ISO date or a simple relative phrase.

    Anything else is returned unchanged so the user can correct it in the form.
    """
    if not value:
        return None

    phrase = value.strip().lower()
    try:
        return isoparse(phrase).date().isoformat()
    except ValueError:
        pass

    if phrase in _RELATIVE_DATES:
        return (today + _RELATIVE_DATES[phrase]).isoformat()

    match = _IN_N_UNITS.match(phrase)
    if match:
        delta = relativedelta(**{f"{match.group(2)}s": int(match.group(1))})
        return (today + delta).isoformat()

    return value


def match_partner(partner_name: Optional[str], links: List[PartnerLink]) -> Optional[PartnerLink]:
    """Case-insensitive match on the partner's name or username"""
    if not partner_name:
        return None
    wanted = partner_name.strip().lower()
    for link in links:
        partner = link.partner_user
        if wanted in (partner.name.strip().lower(), partner.username.strip().lower()):
            return link
    return None


class TranscriptionClient:
    """Uplift AI speech-to-text over multipart HTTP"""

    def __init__(
        self,
        api_key: str,
        url: str,
        max_bytes: int,
        timeout: float,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.max_bytes = max_bytes
        self.timeout = timeout
        self.http_client = http_client

    async def transcribe(
        self,
        content: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        model: str = "scribe",
        language: str = "ur",
        domain: str = "phone-commerce",
    ) -> schemas.TranscriptionResponse:
        if not self.api_key:
            raise MisconfigurationError("UPLIFT_AI_API_KEY not configured")
        if not content:
            raise ValidationError("Audio file is empty. Please record some audio.")
        if len(content) > self.max_bytes:
            raise ValidationError(
                f"Audio file too large. Maximum size is {self.max_bytes // (1024 * 1024)}MB."
            )

        logger.info(f"Transcribing {len(content)} bytes ({content_type}) model={model} language={language}")

        files = {"file": (filename or "audio.webm", content, content_type or "application/octet-stream")}
        data = {"model": model, "language": language, "domain": domain}

        if self.http_client is not None:
            response = await self._post(self.http_client, files, data)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._post(client, files, data)

        if response.is_error:
            raise self._provider_error(response)

        try:
            payload = response.json()
        except ValueError:
            logger.error(f"Unparseable Uplift AI response: {response.text}")
            raise UpstreamError(UPLIFT_PROVIDER, "Invalid response from Uplift AI", response.text)

        text = ""
        if isinstance(payload, dict):
            text = payload.get("text") or payload.get("transcript") or ""
        if not text:
            logger.warning(f"Uplift AI response missing text/transcript field: {payload}")
            raise UpstreamError(UPLIFT_PROVIDER, "Transcription response missing text field", payload)

        return schemas.TranscriptionResponse(text=text, raw=payload)

    async def _post(self, client: httpx.AsyncClient, files: Dict[str, Any], data: Dict[str, str]) -> httpx.Response:
        try:
            return await client.post(
                self.url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data=data,
                files=files,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Uplift AI request failed: {str(e)}")
            raise UpstreamError(UPLIFT_PROVIDER, f"Could not reach Uplift AI: {str(e)}")

    @staticmethod
    def _provider_error(response: httpx.Response) -> UpstreamError:
        try:
            details = response.json()
        except ValueError:
            details = response.text

        message = f"Uplift AI API error: {response.status_code} {response.reason_phrase}"
        if isinstance(details, dict) and details.get("message"):
            message = details["message"]
        elif isinstance(details, str) and details:
            message = details

        logger.error(f"Uplift AI API error {response.status_code}: {details}")
        return UpstreamError(UPLIFT_PROVIDER, message, details, status_code=response.status_code)


class LoanInfoExtractor:
    """Pulls loan form fields out of transcribed Urdu text"""

    def __init__(self, client: Optional[AsyncOpenAI], model: str):
        self.client = client
        self.model = model

    async def extract(self, text: str) -> schemas.ExtractedLoanInfo:
        if self.client is None:
            raise MisconfigurationError("OPENAI_API_KEY not configured")

        try:
            response = await self.client.responses.parse(
                model=self.model,
                input=[
                    {"role": "system", "content": EXTRACTION_PROMPT},
                    {"role": "user", "content": f"Extract loan information from this Urdu text: {text}"},
                ],
                text_format=schemas.ExtractedLoanInfo,
            )
        except OpenAIError as e:
            logger.error(f"Loan info extraction failed: {str(e)}")
            raise UpstreamError(OPENAI_PROVIDER, str(e))

        if response.output_parsed is None:
            raise UpstreamError(OPENAI_PROVIDER, "Model returned no loan information")
        return response.output_parsed


class VoiceService:
    """Turns extracted fields into a loan form prefill"""

    @staticmethod
    async def extract_loan_info(
        db: AsyncSession,
        extractor: LoanInfoExtractor,
        text: str,
        owner_wallet: Optional[str] = None,
        today: Optional[date] = None,
    ) -> schemas.LoanInfo:
        extracted = await extractor.extract(text)
        today = today or date.today()

        info = schemas.LoanInfo(
            partner_name=extracted.partner_name,
            loan_amount=extracted.loan_amount,
            description=extracted.description,
            loan_date=resolve_loan_date(extracted.loan_date, today),
            expected_return_date=resolve_loan_date(extracted.expected_return_date, today),
        )

        if owner_wallet and extracted.partner_name:
            owner = await UserService.find_by_wallet(db, owner_wallet)
            if owner:
                link = match_partner(extracted.partner_name, await PartnerService.list_owner_links(db, owner))
                if link:
                    info.partner_id = link.id

        logger.info(f"Extracted loan info: partner={info.partner_name} amount={info.loan_amount}")
        return info
