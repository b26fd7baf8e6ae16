"""
Background rendering of submitted consent forms.
"""
import asyncio
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carehub.core.pdf import render_pdf_from_html
from carehub.utils import get_logger, now
from carehub.features.consents.models import (
    PatientConsent, CONSENT_RECEIVED, JOB_RENDERING, JOB_COMPLETED, JOB_FAILED,
)
from carehub.features.consents.storage import CONSENT_KEY_PREFIX, DocumentStorage

log = get_logger(__name__)


async def _set_state(session_factory: async_sessionmaker[AsyncSession], consent_id: int, **values) -> None:
    async with session_factory() as db:
        consent = await db.scalar(select(PatientConsent).where(PatientConsent.id == consent_id))
        if consent is None:
            return
        for field, value in values.items():
            setattr(consent, field, value)
        await db.commit()


async def render_consent_document(
    consent_id: int,
    html_content: str,
    storage: DocumentStorage,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """
    Render the signed form to PDF, keep a local copy and upload it.

    Moves the consent row through rendering to completed, or to failed with
    the error message. PDF rendering and file I/O run in a worker thread.
    """
    await _set_state(session_factory, consent_id, job_status=JOB_RENDERING)
    try:
        pdf = await asyncio.to_thread(render_pdf_from_html, html_content, "Patient Consent Form")
        file_name = f"consent-{consent_id}-{datetime.now():%Y%m%d%H%M%S}.pdf"
        path = await asyncio.to_thread(storage.save_local, file_name, pdf)
        url = await asyncio.to_thread(storage.upload_with_retry, path, f"{CONSENT_KEY_PREFIX}/{file_name}")
    except Exception as exc:
        log.exception("Rendering consent %s failed", consent_id)
        await _set_state(session_factory, consent_id, job_status=JOB_FAILED, job_error=str(exc))
        return

    if not url:
        await _set_state(
            session_factory, consent_id,
            job_status=JOB_FAILED, job_error="Document upload failed", local_path=path,
        )
        return

    await _set_state(
        session_factory, consent_id,
        job_status=JOB_COMPLETED,
        job_error=None,
        document_url=url,
        local_path=path,
        status=CONSENT_RECEIVED,
        received=now(),
    )
    log.info("Consent %s rendered and uploaded", consent_id)
