"""Prompt template registry and active prompt synchronization."""

import logging
from typing import Iterable, List, Optional

from .errors import NotFoundError, ProtectedTemplateError
from .models import DEFAULT_TEMPLATE_ID, PromptTemplate, default_template

logger = logging.getLogger(__name__)


class TemplateRegistry:
    """
    Named prompt templates plus the active prompt text.

    The prompt text can be edited freely without touching any template, so every
    change to the current template re-syncs the prompt with that template's content.
    """

    def __init__(
        self,
        templates: Optional[Iterable[PromptTemplate]] = None,
        current_id: Optional[str] = DEFAULT_TEMPLATE_ID,
        prompt: Optional[str] = None,
    ):
        self._templates: List[PromptTemplate] = list(templates or [])
        if not any(t.id == DEFAULT_TEMPLATE_ID for t in self._templates):
            self._templates.insert(0, default_template())

        if current_id is not None and not self._find(current_id):
            logger.warning("Current template %s no longer exists, falling back to default", current_id)
            current_id = DEFAULT_TEMPLATE_ID
        self._current_id = current_id

        if prompt is None:
            current = self.current()
            prompt = current.content if current else ""
        self._prompt = prompt

    @property
    def templates(self) -> List[PromptTemplate]:
        return list(self._templates)

    @property
    def current_id(self) -> Optional[str]:
        return self._current_id

    @property
    def prompt(self) -> str:
        return self._prompt

    @prompt.setter
    def prompt(self, text: str) -> None:
        self._prompt = text

    def get(self, template_id: str) -> PromptTemplate:
        template = self._find(template_id)
        if template is None:
            raise NotFoundError(f"No prompt template with id {template_id}")
        return template

    def current(self) -> Optional[PromptTemplate]:
        return self._find(self._current_id) if self._current_id else None

    def add(self, name: str, content: str) -> PromptTemplate:
        template = PromptTemplate(name=name, content=content)
        self._templates.append(template)
        return template

    def update(
        self,
        template_id: str,
        name: Optional[str] = None,
        content: Optional[str] = None,
    ) -> PromptTemplate:
        template = self.get(template_id)
        if name is not None:
            template.name = name
        if content is not None:
            template.content = content

        if template_id == self._current_id:
            self._prompt = template.content
        return template

    def delete(self, template_id: str) -> None:
        """
        Remove a template.

        If it was current, the first remaining template becomes current and
        the prompt text follows it.

        Raises:
            ProtectedTemplateError: For the built-in default template
            NotFoundError: If no template has this id
        """
        if template_id == DEFAULT_TEMPLATE_ID:
            raise ProtectedTemplateError("The default template cannot be deleted")

        template = self.get(template_id)
        self._templates.remove(template)

        if template_id == self._current_id:
            replacement = self._templates[0] if self._templates else None
            self._current_id = replacement.id if replacement else None
            self._prompt = replacement.content if replacement else ""
            logger.debug("Deleted current template %s, now using %s", template_id, self._current_id)

    def set_current(self, template_id: Optional[str]) -> None:
        template = self.get(template_id) if template_id is not None else None
        self._current_id = template_id
        self._prompt = template.content if template else ""

    def _find(self, template_id: Optional[str]) -> Optional[PromptTemplate]:
        for template in self._templates:
            if template.id == template_id:
                return template
        return None
