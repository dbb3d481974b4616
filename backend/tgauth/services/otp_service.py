# /tgauth/services/otp_service.py

"""
One-time code issuance and verification.

Codes are scoped to (project, phone) and stored only as digests. Verify
always inspects the newest unused record; older pending codes stay stored
until their own expiry but are never looked at again.

Every state change of a record (attempts += 1, used_at = now) is a single
conditional find_one_and_update, so two concurrent verifications of the same
record cannot both pass the attempt limit or both consume the code.
"""

import logging
from datetime import timedelta
from typing import Optional, Dict, Any
from pymongo import ReturnDocument

from tgauth.config.settings import settings
from tgauth.config import strings
from tgauth.models.domain import Collections, NEWEST_FIRST
from tgauth.models.errors import (
    ValidationError, NotLinked, RateLimited, DeliveryError,
    CodeNotFound, CodeExpired, TooManyAttempts, InvalidCode,
)
from tgauth.services.db_service import db_service, utcnow
from tgauth.services.security_service import SecurityService, CodeHasher, code_hasher, rate_limiter
from tgauth.services.session_service import session_service
from tgauth.services.telegram_service import telegram_service
from tgauth.utils.logging import mask_phone
from tgauth.utils.metrics import otp_codes_issued_counter, otp_verifications_counter

logger = logging.getLogger(__name__)


class OTPService:
    def __init__(self, hasher: CodeHasher, code_ttl_seconds: int, max_attempts: int, requests_per_minute: int):
        self.hasher = hasher
        self.code_ttl_seconds = code_ttl_seconds
        self.max_attempts = max_attempts
        self.requests_per_minute = requests_per_minute

    @property
    def codes(self):
        return db_service.db[Collections.VERIFICATION_CODES]

    async def issue_code(self, project_id, raw_phone) -> Dict[str, Any]:
        """
        Stores a fresh code for a linked phone and sends it to the bound chat.
        The stored record survives a failed delivery; callers re-issue.
        """
        phone = SecurityService.normalize_phone(raw_phone)
        if not phone:
            raise ValidationError("phone required")

        identity = await session_service.get_identity(project_id, phone)
        if not identity:
            raise NotLinked()

        if not await rate_limiter.check_phone_rate_limit(str(project_id), phone, limit=self.requests_per_minute):
            logger.warning(f"Code request throttled for {mask_phone(phone)} on project {project_id}")
            raise RateLimited()

        code = SecurityService.generate_otp()
        now = utcnow()
        record = {
            "project_id": project_id,
            "phone": phone,
            "code_hash": self.hasher.hash(code),
            "expires_at": now + timedelta(seconds=self.code_ttl_seconds),
            "attempts": 0,
            "used_at": None,
            "created_at": now,
        }
        result = await self.codes.insert_one(record)
        record["_id"] = result.inserted_id
        otp_codes_issued_counter.inc()

        text = strings.VERIFICATION_CODE_WITH_TTL.format(code=code, ttl=self.code_ttl_seconds)
        try:
            await telegram_service.send_message(identity["telegram_id"], text)
        except Exception as e:
            logger.error(f"Code delivery to chat {identity['telegram_id']} failed: {e}")
            raise DeliveryError("cannot deliver code")

        logger.info(f"Verification code issued for {mask_phone(phone)} on project {project_id}")
        return record

    async def get_latest_pending(self, project_id, phone: str) -> Optional[Dict[str, Any]]:
        return await self.codes.find_one(
            {"project_id": project_id, "phone": phone, "used_at": None},
            sort=NEWEST_FIRST,
        )

    async def verify_code(self, project_id, raw_phone, submitted_code) -> None:
        """Consumes the newest pending code on a match; raises otherwise."""
        phone = SecurityService.normalize_phone(raw_phone)
        submitted = str(submitted_code).strip() if submitted_code is not None else ""
        if not phone or not submitted:
            raise ValidationError("phone and code required")

        record = await self.get_latest_pending(project_id, phone)
        self._check_usable(record, utcnow())

        if not self.hasher.matches(submitted, record["code_hash"]):
            updated = await self.codes.find_one_and_update(
                {"_id": record["_id"], "used_at": None, "attempts": {"$lt": self.max_attempts}},
                {"$inc": {"attempts": 1}},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                await self._raise_current_state(record["_id"])
            otp_verifications_counter.labels(result="invalid").inc()
            raise InvalidCode()

        now = utcnow()
        consumed = await self.codes.find_one_and_update(
            {
                "_id": record["_id"],
                "used_at": None,
                "attempts": {"$lt": self.max_attempts},
                "expires_at": {"$gte": now},
            },
            {"$set": {"used_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if consumed is None:
            await self._raise_current_state(record["_id"])

        otp_verifications_counter.labels(result="verified").inc()
        logger.info(f"Verification code accepted for {mask_phone(phone)} on project {project_id}")

    def _check_usable(self, record: Optional[Dict[str, Any]], now) -> None:
        if not record:
            otp_verifications_counter.labels(result="not_found").inc()
            raise CodeNotFound()
        if record.get("used_at") is not None:
            otp_verifications_counter.labels(result="not_found").inc()
            raise CodeNotFound()
        if record["expires_at"] < now:
            otp_verifications_counter.labels(result="expired").inc()
            raise CodeExpired()
        if record.get("attempts", 0) >= self.max_attempts:
            otp_verifications_counter.labels(result="exhausted").inc()
            raise TooManyAttempts()

    async def _raise_current_state(self, record_id) -> None:
        """A guarded update lost a race; report what the record turned into."""
        current = await self.codes.find_one({"_id": record_id})
        self._check_usable(current, utcnow())
        # Every guard failure leaves a terminal state behind; this is a fallback.
        otp_verifications_counter.labels(result="conflict").inc()
        raise InvalidCode()


# Globally accessible instance
otp_service = OTPService(
    code_hasher,
    settings.code_ttl_seconds,
    settings.max_attempts,
    settings.otp_requests_per_phone_per_minute,
)
