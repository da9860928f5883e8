"""
Paid operations run by the metered executor.

An operation knows its kind, how to build the provider prompt, and how to
turn the provider's text into the response payload. Pricing and routing stay
in the executor so every operation is metered the same way.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..models.transaction import OperationKind


class MeteredOperation(ABC):
    kind: OperationKind
    model_preference: Optional[str] = None
    template_name: Optional[str] = None
    template_cost: Optional[int] = None

    @abstractmethod
    def build_prompt(self) -> str:
        ...

    @abstractmethod
    def parse_result(self, text: str) -> Dict[str, Any]:
        ...


@dataclass
class GenerationOperation(MeteredOperation):
    topic: str
    language: str
    template_name: Optional[str] = None
    template_description: Optional[str] = None
    template_cost: Optional[int] = None
    model_preference: Optional[str] = None

    kind = OperationKind.GENERATION

    def build_prompt(self) -> str:
        prompt = f"Topic: {self.topic}\n"
        if self.template_name:
            prompt += f"Template: {self.template_name}\n"
            if self.template_description:
                prompt += f"Instructions: {self.template_description}\n"
        prompt += f"Language: {self.language}\n\nGenerate content:"
        return prompt

    def parse_result(self, text: str) -> Dict[str, Any]:
        return {"text": text}


_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass
class ProofreadOperation(MeteredOperation):
    text_to_proofread: str

    kind = OperationKind.PROOFREADING

    def build_prompt(self) -> str:
        return (
            "Proofread the text below. Fix spelling, grammar and punctuation "
            "without changing its meaning or language.\n"
            'Reply with JSON only: {"improvedText": "<corrected text>", '
            '"suggestions": "<short summary of the changes>"}\n\n'
            f"Text:\n{self.text_to_proofread}"
        )

    def parse_result(self, text: str) -> Dict[str, Any]:
        try:
            data = json.loads(_FENCE.sub("", text.strip()))
        except ValueError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("improvedText"), str):
            suggestions = data.get("suggestions") or ""
            if isinstance(suggestions, list):
                suggestions = "\n".join(str(s) for s in suggestions)
            return {"improved_text": data["improvedText"], "suggestions": str(suggestions)}
        # Model ignored the format; treat the whole reply as the corrected text.
        return {"improved_text": text, "suggestions": ""}
