"""Router for the webhook feature."""
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Header, Request, status

from api.features.webhook.controller import WebhookController
from api.features.webhook.dtos import WebhookResult
from api.shared.response import ResponseModel
from di.container import ApplicationContainer as DependencyContainer

router = APIRouter()


@router.post(
    "",
    response_model=ResponseModel[WebhookResult],
    status_code=status.HTTP_202_ACCEPTED,
)
@inject
async def line_callback(
    request: Request,
    x_line_signature: str = Header(default=""),
    controller: WebhookController = Depends(
        Provide[DependencyContainer.controllers.webhook_controller]
    ),
):
    """Receive LINE webhook events and enqueue text messages."""
    body = await request.body()
    return await controller.handle_callback(body=body, signature=x_line_signature)
