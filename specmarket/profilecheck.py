"""LLM review of a specialist's bio and display name before publishing."""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from specmarket.llm import LLMProvider, build_request, is_transient_error

log = logging.getLogger(__name__)

PUBLISH_MIN_SCORE = 60
DEFAULT_MAX_TOKENS = 1024

BIO_SYSTEM_PROMPT = """Ты — модератор маркетплейса marketpclce. Маркетплейс подбирает специалистов в сфере видео и контент-продакшна (монтажёры, видеорежиссёры, моушн-дизайнеры, сценаристы, UGC-креаторы, видеооператоры, фотографы, актёры, дизайнеры, ИИ-креаторы, СММ-специалисты, блогеры, таргетологи, посевы).

Твоя задача — оценить ОПИСАНИЕ (bio) специалиста перед публикацией профиля и решить, готово ли оно к показу заказчикам.

КРИТЕРИИ ХОРОШЕГО BIO
1. Конкретика. Указаны реальные ниши, форматы, инструменты или платформы (Reels, TikTok, YouTube, Premiere, After Effects и т.п.). Без воды и общих фраз вроде «делаю качественно и в срок».
2. Соответствие категории. Описание не противоречит выбранной специализации (если человек указал, что он СММ, в bio не должно быть только про моушн-графику).
3. Длина. От ~120 до ~1200 символов. Слишком короткое = недостаточно деталей, слишком длинное = не читается.
4. Безопасность. Без контактов (телефонов, ссылок на мессенджеры, e-mail), без обсценной лексики, без рекламы сторонних сервисов, без обхода маркетплейса.
5. Тон. Профессиональный, от первого лица, без CAPS LOCK и эмодзи-спама.

ОЦЕНКА
- score: 0..100 — насколько bio готово к публикации.
- ok: true, если score >= 60 и нет грубых нарушений (контакты, мат, реклама обхода).
- reasons: массив коротких пунктов на русском — что мешает или, наоборот, сильно. 1-4 пункта. Когда есть проблемы — объясни КАК их доработать (что добавить/убрать), а не только «коротко» или «нет конкретики».
- suggestion: переписанное bio на русском, если score < 80. Это полноценный готовый текст, который пользователь может скопировать и вставить — не план, не оглавление, не список задач. Сохраняй смысл и факты, которые есть в исходнике; ничего не выдумывай. Если в исходнике мало данных — переформулируй то, что есть, не добавляя ложных конкретик. Если score >= 80 и серьёзных правок не нужно, suggestion может быть пустой строкой.

ФОРМАТ
Только строгий JSON по схеме. Без преамбул и эпилогов."""

NAME_SYSTEM_PROMPT = """Ты — модератор маркетплейса marketpclce. Маркетплейс подбирает специалистов в сфере видео и контент-продакшна.

Твоя задача — оценить ИМЯ/НАЗВАНИЕ (display_name) специалиста — это имя/псевдоним/название студии длиной 2–60 символов, которое показывается заказчикам.

КРИТЕРИИ ХОРОШЕГО ИМЕНИ
1. Без контактов. Никаких телефонов, e-mail, @username, t.me/..., ссылок, ников мессенджеров.
2. Без рекламы и обхода маркетплейса. Не должно содержать призывов писать в директ, упоминаний сторонних площадок-конкурентов, промо-кодов.
3. Без мата, оскорблений, агрессии, дискриминации.
4. Без CAPS LOCK на всё имя, без рядов эмодзи, без бессмысленного спама символов («!!!», «★★★», «———»). Допустимы 1–2 уместных эмодзи или знака.
5. Похоже на имя/псевдоним/название студии: «Анна Петрова», «Studio Forge», «Иван — моушн». Не служебные строки вроде «специалист по…», «лучший монтажёр Москвы 24/7».

ОЦЕНКА
- score: 0..100 — насколько имя готово к публикации.
- ok: true, если score >= 60 и нет грубых нарушений (контакты, мат, реклама обхода).
- reasons: массив коротких пунктов на русском — что не так или, наоборот, сильно. 1-3 пункта.
- suggestion: альтернативный вариант имени на русском, если score < 80. Сохраняй узнаваемое ядро (имя/бренд), убирай служебные слова и спам. Если score >= 80, suggestion может быть пустой строкой.

ФОРМАТ
Только строгий JSON по схеме. Без преамбул и эпилогов."""


class ProfileCheckError(Exception):
    """The profile check could not be completed."""


class EmptyInputError(ProfileCheckError):
    """Neither bio nor display name was given."""

    def __init__(self) -> None:
        super().__init__("empty_input")


class LLMDisabledError(ProfileCheckError):
    """No LLM provider is configured."""

    def __init__(self) -> None:
        super().__init__("llm_disabled")


def build_bio_prompt(category: str = "", category_title: str = "") -> str:
    """Bio prompt, with the specialist's primary category appended when known."""
    if not category and not category_title:
        return BIO_SYSTEM_PROMPT
    context = "\n\nКОНТЕКСТ ПРОФИЛЯ\n"
    if category_title:
        context += f"Основная категория специалиста: {category_title} ({category})."
    else:
        context += f"Категория специалиста (код): {category}."
    return BIO_SYSTEM_PROMPT + context


def build_name_prompt() -> str:
    return NAME_SYSTEM_PROMPT


def part_response_schema() -> dict[str, Any]:
    """JSON schema the model must answer with for one checked field."""
    return {
        "type": "object",
        "additionalProperties": False,
        "required": ["ok", "score", "reasons", "suggestion"],
        "properties": {
            "ok": {"type": "boolean"},
            "score": {"type": "integer", "minimum": 0, "maximum": 100},
            "reasons": {"type": "array", "items": {"type": "string"}},
            "suggestion": {"type": "string"},
        },
    }


@dataclass
class PartResult:
    """Verdict on one field."""

    ok: bool = False
    score: int = 0
    reasons: list[str] | None = field(default_factory=list)
    suggestion: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "PartResult":
        if data is None:
            return cls(reasons=None)
        if not isinstance(data, Mapping):
            raise TypeError("verdict must be an object")
        ok = data.get("ok")
        if ok is not None and not isinstance(ok, bool):
            raise TypeError(f"ok must be a boolean, got {ok!r}")
        score = data.get("score")
        if score is not None and (isinstance(score, bool) or not isinstance(score, int)):
            raise TypeError(f"score must be an integer, got {score!r}")
        reasons = data.get("reasons")
        if reasons is not None:
            if not isinstance(reasons, list) or not all(isinstance(r, str) for r in reasons):
                raise TypeError("reasons must be a list of strings")
            reasons = list(reasons)
        suggestion = data.get("suggestion")
        if suggestion is not None and not isinstance(suggestion, str):
            raise TypeError("suggestion must be a string")
        return cls(
            ok=bool(ok),
            score=score or 0,
            reasons=reasons,
            suggestion=suggestion or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "score": self.score,
            "reasons": list(self.reasons) if self.reasons is not None else None,
            "suggestion": self.suggestion,
        }


@dataclass
class CheckResult:
    """Verdicts on bio and name; ``ok`` only if both pass."""

    ok: bool = False
    bio: PartResult = field(default_factory=PartResult)
    name: PartResult = field(default_factory=PartResult)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "bio": self.bio.to_dict(), "name": self.name.to_dict()}


@dataclass
class CheckInput:
    bio: str = ""
    display_name: str = ""
    primary_category: str = ""
    primary_category_title: str = ""


def skipped_part() -> PartResult:
    """Verdict for a field that was not sent for checking."""
    return PartResult(ok=True, score=100, reasons=[], suggestion="")


def normalize_part(part: PartResult) -> PartResult:
    """Clamp the score to 0..100, default reasons to a list and trim the suggestion."""
    return replace(
        part,
        score=min(max(part.score, 0), 100),
        reasons=list(part.reasons) if part.reasons is not None else [],
        suggestion=part.suggestion.strip(),
    )


class ProfileCheckService:
    """Sends bio and name to the LLM in parallel and collects the verdicts."""

    def __init__(
        self,
        client: LLMProvider | None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        effort: str = "",
        retry_delay: float = 0.3,
    ) -> None:
        self._client = client
        self._max_tokens = max_tokens if max_tokens > 0 else DEFAULT_MAX_TOKENS
        self._effort = effort
        self._retry_delay = retry_delay

    def available(self) -> bool:
        return self._client is not None and bool(self._client.has_key())

    def check(self, check_input: CheckInput) -> CheckResult:
        """Check the non-empty fields; raise ProfileCheckError on failure."""
        bio = check_input.bio.strip()
        name = check_input.display_name.strip()
        if not bio and not name:
            raise EmptyInputError()
        if not self.available():
            raise LLMDisabledError()

        jobs = {}
        with ThreadPoolExecutor(max_workers=2) as pool:
            if bio:
                jobs["bio"] = pool.submit(
                    self._check_part,
                    build_bio_prompt(
                        check_input.primary_category, check_input.primary_category_title
                    ),
                    f"BIO:\n{bio}\n\nДлина: {len(bio)} символов.",
                )
            if name:
                jobs["name"] = pool.submit(
                    self._check_part,
                    build_name_prompt(),
                    f"DISPLAY_NAME:\n{name}\n\nДлина: {len(name)} символов.",
                )

        parts = {"bio": skipped_part(), "name": skipped_part()}
        for label in ("bio", "name"):
            job = jobs.get(label)
            if job is None:
                continue
            try:
                parts[label] = job.result()
            except Exception as exc:
                raise ProfileCheckError(f"{label}: {exc}") from exc

        return CheckResult(
            ok=parts["bio"].ok and parts["name"].ok, bio=parts["bio"], name=parts["name"]
        )

    def _check_part(self, system: str, user_message: str) -> PartResult:
        request = build_request(
            system, user_message, part_response_schema(), self._max_tokens, self._effort
        )
        # One retry on transient provider failures; parse errors and plain 4xx
        # will not go away on a repeat.
        attempts = 2
        for attempt in range(1, attempts + 1):
            try:
                response = self._client.messages(request)
                break
            except Exception as exc:
                if attempt == attempts or not is_transient_error(exc):
                    raise ProfileCheckError(f"llm: {exc}") from exc
                log.warning("profilecheck llm transient, retrying (attempt %d): %s", attempt, exc)
                time.sleep(self._retry_delay)

        raw = response.first_text()
        if not raw:
            raise ProfileCheckError("empty response")
        try:
            parsed = PartResult.from_dict(json.loads(raw))
        except (ValueError, TypeError) as exc:
            raise ProfileCheckError(f"parse: {exc}") from exc
        return normalize_part(parsed)