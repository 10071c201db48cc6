"""Contract template service - ownership rules and default resolution"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import ContractTemplate, User
from ..contracts import templating
from ..contracts.errors import Forbidden, InvalidState, NotFound
from .repository import TemplateRepository
from .schemas import TemplateCreate, TemplateResponse, TemplateUpdate

logger = logging.getLogger(__name__)


def to_response(template: ContractTemplate) -> TemplateResponse:
    return TemplateResponse(
        id=template.id,
        user_id=template.user_id,
        name=template.name,
        description=template.description,
        content=template.content,
        is_default=bool(template.is_default),
        is_system=template.user_id is None,
        placeholders=templating.placeholders(template.content),
        created_at=template.created_at,
        updated_at=template.updated_at,
    )


class TemplateService:
    """Service layer for contract templates"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = TemplateRepository()

    def list_templates(self, user: User) -> list[ContractTemplate]:
        return self.repo.list_visible(self.db, user.id)

    def get_template(self, template_id: int, user: User) -> ContractTemplate:
        """A template the user may read: their own or a system template"""
        template = self.repo.get(self.db, template_id)
        if not template or (template.user_id is not None and template.user_id != user.id):
            raise NotFound("Template not found")
        return template

    def resolve_template(self, user: User, template_id: Optional[int] = None) -> ContractTemplate:
        """Explicit template, else the user's default, else the system default"""
        if template_id:
            return self.get_template(template_id, user)
        template = self.repo.get_default(self.db, user.id) or self.repo.get_default(self.db, None)
        if not template:
            raise NotFound("No contract template found")
        return template

    def create_template(self, data: TemplateCreate, user: User) -> ContractTemplate:
        template = self.repo.create(self.db, user_id=user.id, **data.model_dump())
        logger.info(f"📝 Template {template.id} created by user {user.id}")
        return template

    def _get_owned(self, template_id: int, user: User) -> ContractTemplate:
        template = self.get_template(template_id, user)
        if template.user_id != user.id:
            raise Forbidden("System templates cannot be modified")
        return template

    def update_template(self, template_id: int, data: TemplateUpdate, user: User) -> ContractTemplate:
        template = self._get_owned(template_id, user)
        updates = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        return self.repo.update(self.db, template, **updates)

    def delete_template(self, template_id: int, user: User) -> dict:
        template = self._get_owned(template_id, user)
        try:
            self.repo.delete(self.db, template)
        except IntegrityError as e:
            self.db.rollback()
            raise InvalidState("Template is used by existing contracts") from e
        logger.info(f"🗑️ Template {template_id} deleted by user {user.id}")
        return {"success": True}
