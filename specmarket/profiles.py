"""Editing and publishing specialist profiles."""

from __future__ import annotations

import enum
import uuid
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence

from specmarket.profile_models import (
    PatchFullInput,
    PatchInput,
    Profile,
    PublicProfile,
)
from specmarket.profile_rules import (
    EmailUnverifiedError,
    InvalidInputError,
    ProfileError,
    ProfileRejectedError,
    PublishIncompleteError,
    normalize_patch,
    parse_skill_ids,
    validate_categories,
)
from specmarket.profilecheck import CheckInput, CheckResult

AGGREGATE_SPECIALIST = "specialist"


class SpecialistEvent(str, enum.Enum):
    """Outbox events that make the search index re-read a specialist."""

    UPSERTED = "specialist.upserted"
    PUBLISHED = "specialist.published"
    RETRACTED = "specialist.retracted"


class ProfileTransaction(Protocol):
    """Writes done inside one store transaction.

    ``patch`` and ``lock_profile`` raise ConflictError when an expected
    ``updated_at`` no longer matches, NotFoundError when there is no profile.
    """

    def patch(self, user_id: uuid.UUID, patch: PatchInput) -> None: ...

    def lock_profile(self, user_id: uuid.UUID, expected: datetime | None) -> None: ...

    def replace_categories(
        self, user_id: uuid.UUID, codes: Sequence[str], primary: str
    ) -> None: ...

    def replace_skills(self, user_id: uuid.UUID, skill_ids: Sequence[uuid.UUID]) -> None: ...

    def set_published(self, user_id: uuid.UUID, published: bool) -> None: ...

    def emit(
        self, aggregate: str, aggregate_id: str, event: str, payload: Mapping[str, Any]
    ) -> None: ...


class ProfileStore(Protocol):
    """Persistence of profiles; ``transaction`` rolls back when its block raises."""

    def get(self, user_id: uuid.UUID) -> Profile: ...

    def get_public(self, user_id: uuid.UUID) -> PublicProfile: ...

    def valid_category_codes(self, codes: Sequence[str]) -> Sequence[str]: ...

    def valid_skill_ids(self, skill_ids: Sequence[uuid.UUID]) -> Sequence[uuid.UUID]: ...

    def category_title(self, code: str) -> str: ...

    def transaction(self) -> AbstractContextManager[ProfileTransaction]: ...


class EmailVerifier(Protocol):
    def is_email_verified(self, user_id: uuid.UUID) -> bool: ...


class ProfileChecker(Protocol):
    def available(self) -> bool: ...

    def check(self, check_input: CheckInput) -> CheckResult: ...


class ProfileService:
    """Reads, atomic updates and publishing of a specialist's own profile."""

    def __init__(
        self,
        store: ProfileStore,
        checker: ProfileChecker | None = None,
        verifier: EmailVerifier | None = None,
    ) -> None:
        self._store = store
        self._checker = checker
        self._verifier = verifier

    def get(self, user_id: uuid.UUID) -> Profile:
        return self._store.get(user_id)

    def get_public(self, user_id: uuid.UUID) -> PublicProfile:
        return self._store.get_public(user_id)

    def patch_full(self, user_id: uuid.UUID, patch: PatchFullInput) -> Profile:
        """Apply profile fields, categories and skills in one transaction.

        Sections left as ``None`` are not touched; the version in
        ``patch.updated_at`` is checked once, on the first write.
        """
        fields = normalize_patch(patch.to_patch_input())

        codes: list[str] = []
        primary = ""
        if patch.categories is not None:
            codes, primary = validate_categories(patch.categories)
            if len(self._store.valid_category_codes(codes)) != len(codes):
                raise InvalidInputError("unknown category code")

        skill_ids: list[uuid.UUID] = []
        if patch.skills is not None:
            skill_ids = parse_skill_ids(patch.skills.skill_ids)
            valid = self._store.valid_skill_ids(skill_ids) if skill_ids else []
            if len(valid) != len(skill_ids):
                raise InvalidInputError("unknown skill id")

        with self._store.transaction() as tx:
            if patch.has_profile_fields():
                tx.patch(user_id, fields)
            else:
                tx.lock_profile(user_id, patch.updated_at)
            if patch.categories is not None:
                tx.replace_categories(user_id, codes, primary)
            if patch.skills is not None:
                tx.replace_skills(user_id, skill_ids)
            _emit(tx, user_id, SpecialistEvent.UPSERTED)
        return self._store.get(user_id)

    def set_published(self, user_id: uuid.UUID, published: bool) -> Profile:
        """Publish or retract; publishing needs a verified e-mail and a passing check."""
        if published:
            self._ensure_email_verified(user_id)
            self._run_check(user_id)
        event = SpecialistEvent.PUBLISHED if published else SpecialistEvent.RETRACTED
        with self._store.transaction() as tx:
            tx.set_published(user_id, published)
            _emit(tx, user_id, event)
        return self._store.get(user_id)

    def _ensure_email_verified(self, user_id: uuid.UUID) -> None:
        if self._verifier is None:
            return
        try:
            verified = self._verifier.is_email_verified(user_id)
        except Exception as exc:
            raise ProfileError(f"verify email: {exc}") from exc
        if not verified:
            raise EmailUnverifiedError()

    def _run_check(self, user_id: uuid.UUID) -> None:
        if self._checker is None or not self._checker.available():
            return
        profile = self._store.get(user_id)
        bio = profile.bio.strip()
        name = profile.display_name.strip()
        if not bio:
            raise PublishIncompleteError("bio is empty")
        if not name:
            raise PublishIncompleteError("display_name is empty")
        try:
            title = self._store.category_title(profile.primary_category)
        except Exception:
            title = ""
        try:
            result = self._checker.check(
                CheckInput(
                    bio=bio,
                    display_name=name,
                    primary_category=profile.primary_category,
                    primary_category_title=title,
                )
            )
        except Exception as exc:
            raise ProfileError(f"profile check: {exc}") from exc
        if not result.ok:
            raise ProfileRejectedError(result)


def _emit(tx: ProfileTransaction, user_id: uuid.UUID, event: SpecialistEvent) -> None:
    tx.emit(AGGREGATE_SPECIALIST, str(user_id), event, {"user_id": str(user_id)})