"""Controller for the Templates feature."""
from fastapi import HTTPException
from pydantic import ValidationError

from api.features.templates.dtos import TemplateDTO, UpdateTemplateRequest
from chat.exceptions import TemplateInvalidError, TemplateNotFoundError
from chat.gateways import TemplateGateway
from chat.models import PromptTemplate


class TemplateController:
    def __init__(self, template_gateway: TemplateGateway) -> None:
        self.template_gateway = template_gateway

    async def get_template(self, *, name: str) -> TemplateDTO:
        try:
            template = await self.template_gateway.load(name)
        except TemplateNotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)
        except TemplateInvalidError as e:
            raise HTTPException(status_code=409, detail=e.message)
        return TemplateDTO(name=template.name, text=template.text, prose=template.prose)

    async def update_template(
        self, *, name: str, request: UpdateTemplateRequest
    ) -> TemplateDTO:
        try:
            template = PromptTemplate(name=name, text=request.text, prose=request.prose)
        except ValidationError as e:
            raise HTTPException(
                status_code=422, detail=[err["msg"] for err in e.errors()]
            )
        saved = await self.template_gateway.save(template)
        return TemplateDTO(name=saved.name, text=saved.text, prose=saved.prose)
