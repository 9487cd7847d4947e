"""
Prompt Service
Versioned prompt management: every content change appends a version and
activates it, so each prompt has exactly one active version.
"""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import desc
from sqlalchemy.orm import Session, selectinload

from metaplatform.models import Prompt, PromptVersion, User
from metaplatform.utils.errors import NotFoundError

logger = logging.getLogger(__name__)


class PromptService:
    """Prompt and prompt version management"""

    def __init__(self, db: Session):
        self.db = db

    def _next_version(self, prompt_id: UUID) -> int:
        max_version = (
            self.db.query(PromptVersion.version)
            .filter(PromptVersion.prompt_id == prompt_id)
            .order_by(desc(PromptVersion.version))
            .first()
        )
        return (max_version[0] + 1) if max_version else 1

    def _add_version(
        self,
        prompt: Prompt,
        content: str,
        prompt_type: str,
        description: Optional[str] = None,
    ) -> PromptVersion:
        """Append a version and make it the only active one"""
        (
            self.db.query(PromptVersion)
            .filter(PromptVersion.prompt_id == prompt.id, PromptVersion.is_active.is_(True))
            .update({PromptVersion.is_active: False}, synchronize_session="fetch")
        )

        version = PromptVersion(
            prompt_id=prompt.id,
            name=prompt.name,
            content=content,
            type=prompt_type,
            version=self._next_version(prompt.id),
            description=description,
            is_active=True,
        )
        self.db.add(version)
        self.db.flush()
        return version

    def create_prompt(
        self,
        user_id: UUID,
        name: str,
        content: str,
        prompt_type: str = "llm",
        description: Optional[str] = None,
    ) -> Prompt:
        """
        Create a prompt with version 1 active

        Args:
            user_id: owner
            name: prompt name
            content: prompt text
            prompt_type: llm or code_generation
            description: prompt description

        Returns:
            Created Prompt
        """
        if not self.db.query(User).filter(User.id == user_id).first():
            raise NotFoundError("User not found")

        prompt = Prompt(name=name, description=description, user_id=user_id)
        self.db.add(prompt)
        self.db.flush()

        self._add_version(prompt, content, prompt_type, description="Initial version")
        self.db.commit()
        self.db.refresh(prompt)

        logger.info(f"Created prompt: {name} v1 (prompt_id={prompt.id})")
        return prompt

    def list_prompts(self, user_id: UUID) -> List[Prompt]:
        return (
            self.db.query(Prompt)
            .options(selectinload(Prompt.versions))
            .filter(Prompt.user_id == user_id)
            .order_by(Prompt.created_at.desc())
            .all()
        )

    def get_prompt(self, prompt_id: UUID, user_id: UUID) -> Prompt:
        prompt = (
            self.db.query(Prompt)
            .filter(Prompt.id == prompt_id, Prompt.user_id == user_id)
            .first()
        )
        if not prompt:
            raise NotFoundError("Prompt not found")
        return prompt

    def update_prompt(
        self,
        prompt_id: UUID,
        user_id: UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
        content: Optional[str] = None,
        prompt_type: Optional[str] = None,
        version_description: Optional[str] = None,
    ) -> Prompt:
        """Metadata edits stay on the prompt; content/type edits create a new version"""
        prompt = self.get_prompt(prompt_id, user_id)
        if name is not None:
            prompt.name = name
        if description is not None:
            prompt.description = description

        active = prompt.active_version
        new_content = content if content is not None else (active.content if active else None)
        new_type = prompt_type or (active.type if active else "llm")

        changed = active is None or new_content != active.content or new_type != active.type
        if new_content is not None and changed:
            version = self._add_version(prompt, new_content, new_type, version_description)
            logger.info(f"Prompt {prompt.id} now at v{version.version}")

        self.db.commit()
        self.db.refresh(prompt)
        return prompt

    def list_versions(self, prompt_id: UUID, user_id: UUID) -> List[PromptVersion]:
        prompt = self.get_prompt(prompt_id, user_id)
        return (
            self.db.query(PromptVersion)
            .filter(PromptVersion.prompt_id == prompt.id)
            .order_by(desc(PromptVersion.version))
            .all()
        )

    def activate_version(self, prompt_id: UUID, user_id: UUID, version_number: int) -> PromptVersion:
        """Roll back (or forward) to an existing version"""
        prompt = self.get_prompt(prompt_id, user_id)
        target = (
            self.db.query(PromptVersion)
            .filter(PromptVersion.prompt_id == prompt.id, PromptVersion.version == version_number)
            .first()
        )
        if not target:
            raise NotFoundError(f"Prompt version not found: {version_number}")

        (
            self.db.query(PromptVersion)
            .filter(PromptVersion.prompt_id == prompt.id, PromptVersion.id != target.id)
            .update({PromptVersion.is_active: False}, synchronize_session="fetch")
        )
        target.is_active = True
        self.db.commit()
        self.db.refresh(target)
        return target

    def delete_prompt(self, prompt_id: UUID, user_id: UUID) -> None:
        prompt = self.get_prompt(prompt_id, user_id)
        self.db.delete(prompt)
        self.db.commit()
        logger.info(f"Deleted prompt {prompt_id}")
