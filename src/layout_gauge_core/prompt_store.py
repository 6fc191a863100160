"""
Prompt Store

In-memory prompt-versioning store: prompt versions per task, the active
flag, and a rolling performance score per version.
"""

import logging
import threading
import uuid

from layout_gauge_core.domain.entities import AIPrompt

logger = logging.getLogger(__name__)


class PromptNotFoundError(LookupError):
    """Raised when a prompt (or an active prompt for a task) does not exist"""
    pass


class PromptStore:
    """
    Prompt versions keyed by prompt id

    "At most one active prompt per task" is not enforced on registration.
    activate() deactivates the other versions of the same task, and
    get_active_prompt() returns the most recently registered active version if several exist.
    """

    def __init__(self) -> None:
        self._prompts: dict[str, AIPrompt] = {}
        self._lock = threading.Lock()

    def register_prompt(
        self,
        task_id: str,
        version: str,
        text: str,
        *,
        is_active: bool = False,
        parent_prompt_id: str | None = None,
        prompt_id: str | None = None,
    ) -> AIPrompt:
        """
        Register a new prompt version

        Returns:
            The stored AIPrompt
        """
        prompt = AIPrompt(
            prompt_id=prompt_id or f"prompt_{uuid.uuid4().hex}",
            task_id=task_id,
            version=version,
            text=text,
            is_active=is_active,
            parent_prompt_id=parent_prompt_id,
        )
        with self._lock:
            self._prompts[prompt.prompt_id] = prompt
        logger.info("Registered prompt %s (task=%s, version=%s)", prompt.prompt_id, task_id, version)
        return prompt

    def get_prompt(self, prompt_id: str) -> AIPrompt:
        with self._lock:
            prompt = self._prompts.get(prompt_id)
        if prompt is None:
            raise PromptNotFoundError(f"Prompt not found: {prompt_id}")
        return prompt

    def list_prompts(self, task_id: str | None = None) -> list[AIPrompt]:
        """Prompts in registration order, optionally filtered by task"""
        with self._lock:
            prompts = list(self._prompts.values())
        if task_id is None:
            return prompts
        return [p for p in prompts if p.task_id == task_id]

    def get_active_prompt(self, task_id: str) -> AIPrompt:
        """
        Get the active prompt of a task

        Raises:
            PromptNotFoundError: If the task has no active prompt
        """
        active = [p for p in self.list_prompts(task_id) if p.is_active]
        if not active:
            raise PromptNotFoundError(f"No active prompt for task: {task_id}")
        if len(active) > 1:
            logger.warning(
                "Task %s has %d active prompts, using the newest (%s)",
                task_id, len(active), active[-1].prompt_id,
            )
        return active[-1]

    def activate(self, prompt_id: str) -> AIPrompt:
        """Mark a prompt active and deactivate the other versions of its task"""
        prompt = self.get_prompt(prompt_id)
        with self._lock:
            for other in self._prompts.values():
                if other.task_id == prompt.task_id:
                    other.is_active = other.prompt_id == prompt_id
        logger.info("Activated prompt %s (task=%s, version=%s)", prompt_id, prompt.task_id, prompt.version)
        return prompt

    def record_performance(self, prompt_id: str, quality_score: float) -> AIPrompt:
        """
        Fold a quality score into the prompt's rolling mean

        Returns:
            The updated AIPrompt

        Raises:
            PromptNotFoundError: If the prompt does not exist
        """
        prompt = self.get_prompt(prompt_id)
        with self._lock:
            prompt.usage_count += 1
            prompt.performance_score = (
                prompt.performance_score * (prompt.usage_count - 1) + quality_score
            ) / prompt.usage_count
        logger.debug(
            "Updated prompt %s performance: score=%.3f usage=%d",
            prompt_id, prompt.performance_score, prompt.usage_count,
        )
        return prompt

    @staticmethod
    def next_version(version: str) -> str:
        """Derive a child version label (v1.0 -> v1.0.1, v1.0.1 -> v1.0.2)"""
        head, sep, tail = version.rpartition(".")
        if sep and tail.isdigit() and head.count(".") >= 1:
            return f"{head}.{int(tail) + 1}"
        return f"{version}.1"

    def next_free_version(self, task_id: str, version: str) -> str:
        """
        Next child version label of `version` not yet registered for the task

        Args:
            task_id: Task whose registered versions are checked
            version: Parent version label

        Returns:
            First label in the next_version() sequence that is unused
        """
        used = {p.version for p in self.list_prompts(task_id)}
        candidate = self.next_version(version)
        while candidate in used:
            candidate = self.next_version(candidate)
        return candidate
