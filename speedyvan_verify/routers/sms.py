"""Internal SMS dispatch endpoint.

Used by booking and driver workflows to send templated notifications.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from speedyvan_verify.core.auth import require_internal_key
from speedyvan_verify.core.phone import is_valid_uk_mobile
from speedyvan_verify.schemas.sms import SmsSendRequest, SmsSendResponse
from speedyvan_verify.services.sms import (
    SmsDispatcher,
    SmsEvent,
    SmsGatewayClientError,
    SmsGatewayError,
    SmsNotConfiguredError,
    UnknownTemplateError,
)

router = APIRouter(
    prefix="/api/sms",
    tags=["sms"],
)


def get_sms_dispatcher(request: Request) -> SmsDispatcher:
    """Dispatcher built once in the app lifespan."""
    return request.app.state.sms_dispatcher


def gateway_http_error(exc: SmsGatewayError) -> HTTPException:
    """Map a gateway failure to the HTTP error shown to callers."""
    if isinstance(exc, SmsNotConfiguredError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SMS delivery is not configured",
        )
    if isinstance(exc, SmsGatewayClientError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="SMS gateway rejected the message",
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="SMS gateway is temporarily unavailable",
    )


@router.post(
    "/send",
    response_model=SmsSendResponse,
    dependencies=[Depends(require_internal_key)],
)
async def send_sms(
    body: SmsSendRequest,
    dispatcher: SmsDispatcher = Depends(get_sms_dispatcher),
) -> SmsSendResponse:
    """Render a named template and send it to ``to``."""
    if not is_valid_uk_mobile(body.to):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Destination must be a UK mobile number",
        )

    try:
        result = await dispatcher.send(
            SmsEvent(type=body.type, to=body.to, data=body.data)
        )
    except UnknownTemplateError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except SmsGatewayError as e:
        raise gateway_http_error(e)

    return SmsSendResponse.model_validate(result)
