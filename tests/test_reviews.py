import uuid
from datetime import datetime, timedelta, timezone

import pytest

from specmarket.reviews import (
    ConflictError,
    CreateInput,
    ForbiddenError,
    InvalidInputError,
    LeadCheckError,
    NotFoundError,
    ReviewRecord,
    ReviewService,
    UpdateInput,
)

AUTHOR = uuid.uuid4()
OTHER = uuid.uuid4()
SPEC = uuid.uuid4()
LEAD = uuid.uuid4()
LONG_TEXT = "Отличная работа, всё в срок"


class FakeStore:
    def __init__(self, specialists=(SPEC,), leads=()):
        self.specialists = set(specialists)
        self.leads = set(leads)
        self.reviews = {}
        self.list_calls = []
        self.clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self):
        self.clock += timedelta(seconds=1)
        return self.clock

    def target_is_specialist(self, user_id):
        return user_id in self.specialists

    def lead_authorizes_review(self, lead_id, author_id, target_id):
        return (lead_id, author_id, target_id) in self.leads

    def create(self, data):
        rid = uuid.uuid4()
        now = self._tick()
        self.reviews[rid] = ReviewRecord(
            id=rid, author_user_id=data.author_user_id, target_user_id=data.target_user_id,
            rating=data.rating, text=data.text, author_name=data.author_name,
            lead_id=data.lead_id, created_at=now, updated_at=now,
        )
        return rid

    def update(self, review_id, author_id, data):
        rec = self.reviews.get(review_id)
        if rec is None:
            raise NotFoundError()
        if rec.author_user_id != author_id:
            raise ForbiddenError()
        if data.updated_at is not None and data.updated_at != rec.updated_at:
            raise ConflictError()
        if data.rating is not None:
            rec.rating = data.rating
        if data.text is not None:
            rec.text = data.text
        rec.updated_at = self._tick()
        return rec.target_user_id

    def delete(self, review_id, author_id):
        rec = self.reviews.get(review_id)
        if rec is None:
            raise NotFoundError()
        if rec.author_user_id != author_id:
            raise ForbiddenError()
        del self.reviews[review_id]
        return rec.target_user_id

    def get_by_id(self, review_id):
        if review_id not in self.reviews:
            raise NotFoundError()
        return self.reviews[review_id]

    def list_by_target(self, target_id, limit, offset):
        self.list_calls.append((limit, offset))
        items = sorted(
            (r for r in self.reviews.values() if r.target_user_id == target_id),
            key=lambda r: r.created_at, reverse=True,
        )
        return items[offset:offset + limit]


def make(store=None):
    store = store or FakeStore()
    return ReviewService(store), store


def test_create_trims_and_stores():
    svc, store = make()
    rv = svc.create(CreateInput(AUTHOR, SPEC, 5, text=f"  {LONG_TEXT}  ", author_name=" Ann "))
    assert rv.text == LONG_TEXT
    assert rv.author_name == "Ann"
    assert store.reviews[rv.id] is rv
    data = rv.to_dict()
    assert data["target_user_id"] == str(SPEC)
    assert "lead_id" not in data


@pytest.mark.parametrize("rating", [0, 6, -1])
def test_create_rejects_bad_rating(rating):
    svc, _ = make()
    with pytest.raises(InvalidInputError) as info:
        svc.create(CreateInput(AUTHOR, SPEC, rating, text=LONG_TEXT))
    assert info.value.detail == "rating must be 1..5"


def test_create_validation_errors():
    svc, _ = make()
    with pytest.raises(InvalidInputError, match="target_user_id is required"):
        svc.create(CreateInput(AUTHOR, uuid.UUID(int=0), 5, text=LONG_TEXT))
    with pytest.raises(InvalidInputError, match="cannot review yourself"):
        svc.create(CreateInput(SPEC, SPEC, 5, text=LONG_TEXT))
    with pytest.raises(InvalidInputError, match="text too long"):
        svc.create(CreateInput(AUTHOR, SPEC, 5, text="x" * 2001))
    with pytest.raises(InvalidInputError, match="author_name too long"):
        svc.create(CreateInput(AUTHOR, SPEC, 5, text=LONG_TEXT, author_name="a" * 121))
    with pytest.raises(InvalidInputError, match="at least 10 chars"):
        svc.create(CreateInput(AUTHOR, SPEC, 5, text="  short  "))
    with pytest.raises(InvalidInputError, match="not a specialist"):
        svc.create(CreateInput(AUTHOR, OTHER, 5, text=LONG_TEXT))


def test_error_message_has_prefix():
    svc, _ = make()
    with pytest.raises(InvalidInputError) as info:
        svc.create(CreateInput(SPEC, SPEC, 5, text=LONG_TEXT))
    assert str(info.value) == "invalid input: cannot review yourself"


def test_lead_allows_short_text_when_authorized():
    svc, _ = make(FakeStore(leads={(LEAD, AUTHOR, SPEC)}))
    rv = svc.create(CreateInput(AUTHOR, SPEC, 4, text="", lead_id=LEAD))
    assert rv.lead_id == LEAD
    assert rv.to_dict()["lead_id"] == str(LEAD)


def test_lead_must_authorize():
    svc, store = make()
    with pytest.raises(LeadCheckError):
        svc.create(CreateInput(AUTHOR, SPEC, 4, text=LONG_TEXT, lead_id=LEAD))
    assert store.reviews == {}


def test_update_rules():
    svc, _ = make()
    rv = svc.create(CreateInput(AUTHOR, SPEC, 3, text=LONG_TEXT))
    with pytest.raises(InvalidInputError, match="nothing to update"):
        svc.update(rv.id, AUTHOR, UpdateInput())
    with pytest.raises(InvalidInputError, match="rating"):
        svc.update(rv.id, AUTHOR, UpdateInput(rating=6))
    with pytest.raises(InvalidInputError, match="text too long"):
        svc.update(rv.id, AUTHOR, UpdateInput(text="y" * 2001))
    updated = svc.update(rv.id, AUTHOR, UpdateInput(rating=5, text="  new text  "))
    assert updated.rating == 5
    assert updated.text == "new text"


def test_update_store_errors_propagate():
    svc, _ = make()
    rv = svc.create(CreateInput(AUTHOR, SPEC, 3, text=LONG_TEXT))
    with pytest.raises(ForbiddenError):
        svc.update(rv.id, OTHER, UpdateInput(rating=4))
    with pytest.raises(NotFoundError):
        svc.update(uuid.uuid4(), AUTHOR, UpdateInput(rating=4))
    stale = rv.updated_at - timedelta(hours=1)
    with pytest.raises(ConflictError):
        svc.update(rv.id, AUTHOR, UpdateInput(rating=4, updated_at=stale))


def test_delete():
    svc, store = make()
    rv = svc.create(CreateInput(AUTHOR, SPEC, 3, text=LONG_TEXT))
    with pytest.raises(ForbiddenError):
        svc.delete(rv.id, OTHER)
    svc.delete(rv.id, AUTHOR)
    assert rv.id not in store.reviews
    with pytest.raises(NotFoundError):
        svc.delete(rv.id, AUTHOR)


def test_list_by_target_clamps_paging():
    svc, store = make()
    first = svc.create(CreateInput(AUTHOR, SPEC, 3, text=LONG_TEXT))
    second = svc.create(CreateInput(OTHER, SPEC, 4, text=LONG_TEXT))
    items = svc.list_by_target(SPEC, 0, -3)
    assert [r.id for r in items] == [second.id, first.id]
    svc.list_by_target(SPEC, 500, 0)
    svc.list_by_target(SPEC, 100, 1)
    assert store.list_calls == [(20, 0), (20, 0), (100, 1)]


def test_update_input_from_dict():
    parsed = UpdateInput.from_dict(
        {"rating": 4, "text": "hi", "updated_at": "2024-01-01T00:00:01Z"}
    )
    assert parsed.rating == 4
    assert parsed.text == "hi"
    assert parsed.updated_at == datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
    assert UpdateInput.from_dict({}) == UpdateInput()
    with pytest.raises(TypeError):
        UpdateInput.from_dict({"rating": "five"})