"""Controller for the webhook feature."""
from fastapi import HTTPException

from api.features.webhook.dtos import WebhookResult
from api.features.webhook.service import WebhookService
from api.shared.response import ResponseModel
from chat.exceptions import SignatureValidationError


class WebhookController:
    def __init__(self, webhook_service: WebhookService) -> None:
        self.webhook_service = webhook_service

    async def handle_callback(
        self, *, body: bytes, signature: str
    ) -> ResponseModel[WebhookResult]:
        try:
            result = await self.webhook_service.handle(body, signature)
        except SignatureValidationError as e:
            raise HTTPException(status_code=401, detail=e.message)
        return ResponseModel.success(data=result, message="Accepted")
