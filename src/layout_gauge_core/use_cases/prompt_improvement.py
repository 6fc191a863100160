"""
Prompt Improvement

Asks a text-completion model for targeted edits to a prompt and applies them.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from layout_gauge_core.infrastructure.model_clients.base import ModelClient

from layout_gauge_core.domain.entities import ImprovedPrompt, PromptModification

logger = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```json\s*(\{[\s\S]*?\})\s*```")
_BARE_JSON_RE = re.compile(r"(\{[\s\S]*\"improvements\"[\s\S]*\})")


def apply_modifications(base_prompt: str, modifications: list[PromptModification]) -> str:
    """
    Apply modifications to a prompt, in order

    For each modification:
    1. Replace original_text when it occurs in the prompt
    2. "append" / "prepend" sections add text at the end / start
    3. Otherwise insert after the Markdown heading named by section
    4. Otherwise append

    Args:
        base_prompt: Prompt text
        modifications: Modifications to apply

    Returns:
        Modified prompt text
    """
    prompt = base_prompt
    for mod in modifications:
        if mod.original_text and mod.original_text in prompt:
            prompt = prompt.replace(mod.original_text, mod.replacement_text, 1)
        elif mod.section == "append":
            prompt = f"{prompt}\n\n{mod.replacement_text}"
        elif mod.section == "prepend":
            prompt = f"{mod.replacement_text}\n\n{prompt}"
        else:
            # Section body runs up to the next heading
            pattern = re.compile(rf"(#+\s*{re.escape(mod.section)}[^#]*?)\n#+\s", re.IGNORECASE)
            match = pattern.search(prompt)
            if match:
                body = match.group(1)
                prompt = prompt.replace(body, f"{body}\n{mod.replacement_text}", 1)
            else:
                prompt = f"{prompt}\n\n{mod.replacement_text}"
    return prompt


class PromptImprover:
    """
    Synthesizes prompt variants with a text-completion model

    The model is treated as an opaque string -> string transformation.
    """

    def __init__(self, client: ModelClient, max_sample_chars: int = 2000) -> None:
        self._client = client
        self.max_sample_chars = max_sample_chars

    def improve(
        self,
        current_prompt: str,
        issue_patterns: list[str],
        *,
        sample_output: str | None = None,
    ) -> ImprovedPrompt:
        """
        Ask the model for 1-3 edits addressing the issue patterns and apply them

        Args:
            current_prompt: Prompt text to improve
            issue_patterns: Descriptions of the weaknesses observed
            sample_output: Example output produced with the prompt (optional)

        Returns:
            ImprovedPrompt. A reply without parseable JSON yields no modifications
            and the unchanged prompt.

        Raises:
            Exception: Errors from the text-completion client are propagated
        """
        request = self._build_prompt(current_prompt, issue_patterns, sample_output)
        logger.debug("Requesting prompt improvements for %d issue patterns", len(issue_patterns))
        response = self._client.generate(request)

        modifications, improvements = self._parse_response(response.output)
        logger.info(
            "Generated prompt improvements: %d modifications, %d improvements",
            len(modifications), len(improvements),
        )
        return ImprovedPrompt(
            original_prompt=current_prompt,
            improved_prompt=apply_modifications(current_prompt, modifications),
            improvements=improvements,
            modifications=modifications,
        )

    def _build_prompt(
        self,
        current_prompt: str,
        issue_patterns: list[str],
        sample_output: str | None,
    ) -> str:
        parts: list[str] = [
            "# Prompt Engineering Optimization Task",
            "",
            "You are an expert prompt engineer improving a prompt that detects the layout "
            "sections of a web page design. The current prompt has produced detections with "
            "quality issues. Suggest specific, targeted improvements to the prompt.",
            "",
            "## Current Prompt",
            "```",
            current_prompt,
            "```",
            "",
            "## Quality Issues Detected",
        ]
        parts.extend(f"- {p}" for p in issue_patterns)
        if sample_output:
            if len(sample_output) > self.max_sample_chars:
                sample_output = sample_output[: self.max_sample_chars] + "...(truncated)"
            parts.extend(["", "## Sample Output That Needs Improvement", "```json", sample_output, "```"])
        parts.extend([
            "",
            "## Your Task",
            "Suggest 1-3 specific improvements. For each, identify which part of the prompt "
            "to modify, give the exact text to add or replace, and explain why it helps.",
            "",
            "## Response Format",
            "Respond in this JSON format only:",
            "```json",
            json.dumps({
                "modifications": [{
                    "section": "section name or 'append' or 'prepend'",
                    "originalText": "text to replace (if applicable)",
                    "replacementText": "new text to insert",
                    "reason": "reason for this change",
                }],
                "improvements": ["Brief description of improvement 1"],
            }, indent=2),
            "```",
        ])
        return "\n".join(parts)

    @staticmethod
    def _parse_response(raw: str) -> tuple[list[PromptModification], list[str]]:
        """Extract modifications and improvement notes from the model reply"""
        match = _FENCED_JSON_RE.search(raw) or _BARE_JSON_RE.search(raw)
        if not match:
            logger.warning("Failed to extract JSON from improvement suggestion: %s", raw[:200])
            return [], []

        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            logger.warning("Improvement suggestion is not valid JSON: %s", e)
            return [], []
        if not isinstance(data, dict):
            return [], []

        raw_modifications = data.get("modifications")
        if not isinstance(raw_modifications, list):
            raw_modifications = []
        raw_improvements = data.get("improvements")
        if not isinstance(raw_improvements, list):
            raw_improvements = []

        modifications = []
        for item in raw_modifications:
            if not isinstance(item, dict) or not item.get("replacementText"):
                continue
            modifications.append(PromptModification(
                section=str(item.get("section") or "append"),
                replacement_text=str(item["replacementText"]),
                reason=str(item.get("reason") or ""),
                original_text=item.get("originalText") or None,
            ))
        improvements = [str(i) for i in raw_improvements]
        return modifications, improvements
