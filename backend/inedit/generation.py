from __future__ import annotations
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import httpx

from .errors import UpstreamFailureError
from .gemini_client import GeminiClient
from .lifecycle import CERTO_ERRADO, DraftPayload
from .models import Difficulty, Source
from .settings import settings

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
	text: str
	model: str
	tokens_used: Optional[int] = None


def source_text(source: Source) -> str:
	return f"Source: {source.title}\n{source.extracted_text or source.content or ''}"


def build_generation_prompt(
	sources: Sequence[Source],
	count: int,
	difficulty: Optional[Difficulty] = None,
	tags: Optional[Sequence[str]] = None,
) -> str:
	material = "\n\n---\n\n".join(source_text(s) for s in sources)
	lines = [
		"You are an expert in creating CEBRASPE-style exam questions (Certo/Errado format).",
		"",
		f"Based on the following source material, generate {count} high-quality questions, each judged with TWO options: \"Certo\" (correct) or \"Errado\" (wrong).",
	]
	if difficulty:
		lines.append(f"Difficulty level: {Difficulty(difficulty).value}")
	if tags:
		lines.append(f"Topics to focus on: {', '.join(tags)}")
	lines += [
		"",
		"Source Material:",
		material,
		"",
		"For each question provide: title (the statement to judge), description (brief context),",
		"correctAnswer (\"Certo\" or \"Errado\"), explanation (why the answer is right),",
		"tags (3-5 topics), difficulty (easy, medium or hard).",
		"",
		"Return ONLY a JSON array of objects with keys: title, description, correctAnswer, explanation, tags, difficulty.",
		f"Generate exactly {count} questions.",
	]
	return "\n".join(lines)


def _extract_json_array(text: str) -> List[Any]:
	try:
		data = json.loads(text)
		if isinstance(data, list):
			return data
	except ValueError:
		pass
	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			data = json.loads(code_block.group(1))
			if isinstance(data, list):
				return data
		except ValueError:
			pass
	match = re.search(r"\[[\s\S]*\]", text)
	if match:
		try:
			data = json.loads(match.group(0))
			if isinstance(data, list):
				return data
		except ValueError:
			pass
	raise UpstreamFailureError("Failed to parse AI response")


def _parse_difficulty(value: Any, fallback: Difficulty) -> Difficulty:
	try:
		return Difficulty(str(value).strip().lower())
	except ValueError:
		return fallback


def _optional_text(item: dict, key: str, index: int) -> Optional[str]:
	value = item.get(key)
	if value is None:
		return None
	if not isinstance(value, str):
		raise UpstreamFailureError(f"Question {index} from AI has an invalid {key}")
	return value.strip() or None


def parse_generated_questions(text: str, fallback_difficulty: Optional[Difficulty] = None) -> List[DraftPayload]:
	fallback = Difficulty(fallback_difficulty) if fallback_difficulty else Difficulty.MEDIUM
	items = _extract_json_array(text)
	if not items:
		raise UpstreamFailureError("AI response contained no questions")
	payloads: List[DraftPayload] = []
	for i, item in enumerate(items, start=1):
		if not isinstance(item, dict):
			raise UpstreamFailureError(f"Question {i} from AI is not an object")
		title = item.get("title")
		answer = str(item.get("correctAnswer") or item.get("correct_answer") or "").strip().capitalize()
		if not isinstance(title, str) or not title.strip():
			raise UpstreamFailureError(f"Question {i} from AI has no title")
		if answer not in CERTO_ERRADO:
			raise UpstreamFailureError(f"Question {i} from AI has an invalid correctAnswer")
		tags = item.get("tags") or []
		payloads.append(DraftPayload(
			title=title.strip(),
			correct_answer=answer,
			difficulty=_parse_difficulty(item.get("difficulty"), fallback),
			description=_optional_text(item, "description", i),
			explanation=_optional_text(item, "explanation", i),
			tags=[str(t) for t in tags] if isinstance(tags, list) else [],
		))
	return payloads


class QuestionGenerator:
	"""Turns a prompt into raw model output through Gemini."""

	def __init__(self, client_factory=GeminiClient) -> None:
		self._client_factory = client_factory

	async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> GenerationResult:
		try:
			client = self._client_factory()
		except ValueError as exc:
			raise UpstreamFailureError("Question generation is not configured") from exc
		try:
			response = await client.generate(
				prompt,
				system_instruction=system_prompt,
				max_output_tokens=settings.generation_max_output_tokens,
			)
		except (httpx.HTTPError, RuntimeError) as exc:
			logger.warning("Gemini call failed: %s", exc)
			raise UpstreamFailureError("Failed to generate questions, try again") from exc
		finally:
			await client.aclose()
		return GenerationResult(text=response.text, model=response.model, tokens_used=response.total_tokens)


def get_question_generator() -> QuestionGenerator:
	return QuestionGenerator()
