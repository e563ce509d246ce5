"""Router for the Templates feature."""
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends

from api.features.templates.controller import TemplateController
from api.features.templates.dtos import TemplateDTO, UpdateTemplateRequest
from api.shared.response import ResponseModel
from di.container import ApplicationContainer as DependencyContainer

router = APIRouter()


@router.get("/{name}", response_model=ResponseModel[TemplateDTO])
@inject
async def get_template(
    name: str,
    controller: TemplateController = Depends(
        Provide[DependencyContainer.controllers.template_controller]
    ),
):
    template = await controller.get_template(name=name)
    return ResponseModel.success(data=template, message="Template fetched")


@router.put("/{name}", response_model=ResponseModel[TemplateDTO])
@inject
async def update_template(
    name: str,
    request: UpdateTemplateRequest,
    controller: TemplateController = Depends(
        Provide[DependencyContainer.controllers.template_controller]
    ),
):
    """Replace the template; the next execution picks it up."""
    template = await controller.update_template(name=name, request=request)
    return ResponseModel.success(data=template, message="Template updated")
