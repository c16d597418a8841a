import uuid
from datetime import datetime, timezone

import pytest

from specmarket.profile_models import (
    CategoriesPart,
    CategoryRef,
    PatchFullInput,
    PortfolioItem,
    Profile,
    PublicProfile,
    Review,
    SkillRef,
    SkillsPart,
    UploadTicket,
)

USER = uuid.UUID("11111111-1111-1111-1111-111111111111")
ITEM = uuid.UUID("22222222-2222-2222-2222-222222222222")
WHEN = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_from_dict_reads_all_sections():
    body = {
        "display_name": "Anna",
        "rate_min": 100,
        "categories": {"codes": ["editor", "motion"], "primary": "editor"},
        "skills": {"skill_ids": [str(ITEM)]},
        "updated_at": "2024-05-01T12:00:00Z",
    }
    patch = PatchFullInput.from_dict(body)
    assert patch.display_name == "Anna"
    assert patch.rate_min == 100
    assert patch.bio is None
    assert patch.categories == CategoriesPart(codes=["editor", "motion"], primary="editor")
    assert patch.skills == SkillsPart(skill_ids=[str(ITEM)])
    assert patch.updated_at == WHEN


def test_from_dict_null_sections_are_untouched():
    patch = PatchFullInput.from_dict({"categories": None, "skills": None})
    assert patch.categories is None
    assert patch.skills is None
    assert patch.has_profile_fields() is False


def test_from_dict_rejects_wrong_types():
    with pytest.raises(TypeError):
        PatchFullInput.from_dict({"rate_min": "10"})
    with pytest.raises(TypeError):
        PatchFullInput.from_dict({"display_name": 5})
    with pytest.raises(TypeError):
        PatchFullInput.from_dict({"categories": {"codes": [1]}})


def test_has_profile_fields_true_for_any_field():
    assert PatchFullInput(contact_phone="").has_profile_fields() is True
    assert PatchFullInput(skills=SkillsPart()).has_profile_fields() is False


def test_to_patch_input_copies_fields_and_version():
    full = PatchFullInput(bio="text", currency="rub", rate_max=5, updated_at=WHEN)
    patch = full.to_patch_input()
    assert patch.bio == "text"
    assert patch.currency == "rub"
    assert patch.rate_max == 5
    assert patch.updated_at == WHEN
    assert patch.display_name is None


def test_profile_to_dict_omits_empty_optional_fields():
    data = Profile(user_id=USER, display_name="Anna", currency="RUB").to_dict()
    for absent in ("avatar_url", "city", "rate_min", "rate_max", "primary_category",
                   "contact_email", "contact_phone"):
        assert absent not in data
    assert data["user_id"] == str(USER)
    assert data["categories"] == []
    assert data["skill_ids"] == []


def test_profile_to_dict_includes_contacts_and_time():
    data = Profile(
        user_id=USER, contact_email="anna@example.com", rate_min=0,
        primary_category="editor", updated_at=WHEN,
    ).to_dict()
    assert data["contact_email"] == "anna@example.com"
    assert data["rate_min"] == 0
    assert data["primary_category"] == "editor"
    assert data["updated_at"] == "2024-05-01T12:00:00Z"


def test_public_profile_to_dict_nests_children():
    profile = PublicProfile(
        user_id=USER,
        display_name="Anna",
        categories=[CategoryRef(code="editor", title="Editor", is_primary=True)],
        skills=[SkillRef(id=ITEM, slug="premiere", title="Premiere", kind="tool")],
        portfolio=[PortfolioItem(id=ITEM, title="Reel", video_url="https://example.com/v.mp4")],
        reviews=[Review(id=ITEM, author_name="Client", rating=5, text="fine", created_at=WHEN)],
    )
    data = profile.to_dict()
    assert "contact_email" not in data
    assert data["categories"] == [{"code": "editor", "title": "Editor", "is_primary": True}]
    assert data["skills"][0]["id"] == str(ITEM)
    assert data["portfolio"][0]["video_url"] == "https://example.com/v.mp4"
    assert data["reviews"][0]["rating"] == 5


def test_portfolio_item_omits_empty_urls():
    data = PortfolioItem(id=ITEM, title="Reel").to_dict()
    assert "video_url" not in data
    assert "thumbnail_url" not in data
    assert "external_url" not in data
    assert data["category_codes"] == []


def test_upload_ticket_to_dict():
    ticket = UploadTicket(upload_url="https://example.com/put", public_url="https://example.com/v",
                          key="portfolio/x.mp4", expires_in=900)
    assert ticket.to_dict() == {
        "upload_url": "https://example.com/put",
        "public_url": "https://example.com/v",
        "key": "portfolio/x.mp4",
        "expires_in": 900,
    }