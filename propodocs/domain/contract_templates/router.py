"""Contract template router"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import TemplateCreate, TemplateResponse, TemplateUpdate
from .service import TemplateService, to_response

router = APIRouter(prefix="/contract-templates", tags=["Contract Templates"])


def get_template_service(db: Session = Depends(get_db)) -> TemplateService:
    return TemplateService(db)


@router.get("", response_model=list[TemplateResponse])
async def list_templates(
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(get_template_service),
):
    """Own templates plus system templates, defaults first"""
    return [to_response(t) for t in service.list_templates(current_user)]


@router.post("", response_model=TemplateResponse, status_code=201)
async def create_template(
    data: TemplateCreate,
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(get_template_service),
):
    return to_response(service.create_template(data, current_user))


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: int,
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(get_template_service),
):
    return to_response(service.get_template(template_id, current_user))


@router.patch("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: int,
    data: TemplateUpdate,
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(get_template_service),
):
    return to_response(service.update_template(template_id, data, current_user))


@router.delete("/{template_id}")
async def delete_template(
    template_id: int,
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(get_template_service),
):
    return service.delete_template(template_id, current_user)
