from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dashboard.dependencies import get_dispatcher, get_timestamp
from dashboard.schemas import (
    ErrorResponse,
    RetryDeadLettersResponse,
    SendEmailRequest,
    SendEmailResponse,
)
from monitoring.notifications.dispatcher import NotificationDispatcher

router = APIRouter(tags=["Email"])

@router.post(
    "/send-email",
    response_model=SendEmailResponse,
    responses={500: {"model": ErrorResponse}},
)
async def send_email(
    body: SendEmailRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    timestamp: str = Depends(get_timestamp),
):
    """
    Send a caller-composed email through the configured provider.
    """
    sent = await dispatcher.send_raw(body.to, body.subject, body.html_content, body.from_)
    if not sent:
        error = ErrorResponse(
            error="Failed to send email",
            details={"provider": dispatcher.provider},
        )
        return JSONResponse(status_code=500, content=error.model_dump(by_alias=True))

    return SendEmailResponse(
        success=True,
        message="Email sent successfully",
        provider=dispatcher.provider,
        timestamp=timestamp,
    )

@router.post("/notifications/retry", response_model=RetryDeadLettersResponse)
async def retry_dead_letters(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    timestamp: str = Depends(get_timestamp),
):
    """Re-send emails whose delivery previously failed."""
    retried = await dispatcher.retry_dead_letters()
    return RetryDeadLettersResponse(
        success=True,
        message=f"Re-sent {retried} email(s)",
        retried=retried,
        provider=dispatcher.provider,
        timestamp=timestamp,
    )
