"""Contract template repository - Database operations for templates"""

from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from ...models import ContractTemplate
from ..contracts.repository import storage_guard


def _owner_scope(user_id: Optional[int]):
    if user_id is None:
        return ContractTemplate.user_id.is_(None)
    return ContractTemplate.user_id == user_id


class TemplateRepository:
    """Repository for contract template database operations"""

    @staticmethod
    def list_visible(db: Session, user_id: int) -> list[ContractTemplate]:
        """Owner's templates plus system templates, defaults first"""
        with storage_guard(db, "list_templates"):
            return list(
                db.execute(
                    select(ContractTemplate)
                    .where(or_(ContractTemplate.user_id == user_id, ContractTemplate.user_id.is_(None)))
                    .order_by(
                        ContractTemplate.is_default.desc(),
                        ContractTemplate.user_id.is_(None),
                        ContractTemplate.name,
                    )
                )
                .scalars()
                .all()
            )

    @staticmethod
    def get(db: Session, template_id: int) -> Optional[ContractTemplate]:
        with storage_guard(db, "get_template"):
            return db.get(ContractTemplate, template_id)

    @staticmethod
    def get_default(db: Session, user_id: Optional[int]) -> Optional[ContractTemplate]:
        with storage_guard(db, "get_default_template"):
            return (
                db.execute(
                    select(ContractTemplate)
                    .where(_owner_scope(user_id), ContractTemplate.is_default.is_(True))
                    .order_by(ContractTemplate.id)
                )
                .scalars()
                .first()
            )

    @staticmethod
    def clear_default(db: Session, user_id: Optional[int], keep_id: Optional[int] = None) -> None:
        """Unflag every default in the owner scope except keep_id. Caller commits."""
        stmt = update(ContractTemplate).where(
            _owner_scope(user_id), ContractTemplate.is_default.is_(True)
        )
        if keep_id is not None:
            stmt = stmt.where(ContractTemplate.id != keep_id)
        with storage_guard(db, "clear_default_template"):
            db.execute(stmt.values(is_default=False).execution_options(synchronize_session=False))

    @staticmethod
    def create(db: Session, **template_data) -> ContractTemplate:
        template = ContractTemplate(**template_data)
        with storage_guard(db, "create_template"):
            if template.is_default:
                TemplateRepository.clear_default(db, template.user_id)
            db.add(template)
            db.commit()
            db.refresh(template)
        return template

    @staticmethod
    def update(db: Session, template: ContractTemplate, **updates) -> ContractTemplate:
        with storage_guard(db, "update_template"):
            if updates.get("is_default"):
                TemplateRepository.clear_default(db, template.user_id, keep_id=template.id)
            for key, value in updates.items():
                setattr(template, key, value)
            db.commit()
            db.refresh(template)
        return template

    @staticmethod
    def delete(db: Session, template: ContractTemplate) -> None:
        with storage_guard(db, "delete_template"):
            db.delete(template)
            db.commit()
