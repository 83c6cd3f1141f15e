import pytest

from concierge.atelier import service
from concierge.atelier.blocks import (
    DEFAULT_BRANDING,
    SiteBlock,
    merge_branding,
    normalize_block,
    normalize_blocks,
    normalize_branding,
)
from concierge.atelier.builder import SiteBuilder
from concierge.atelier.render import render_block, render_site, type_label
from concierge.context import MemberContext
from concierge.errors import TierLimitReached, ValidationError


def test_normalize_block_fills_defaults():
    block = normalize_block({"type": "nope", "title": "Hi"}, 3)
    assert block.type == "hero"
    assert block.id.startswith("block-3-")
    assert block.order == 3
    assert block.content == {"title": "Hi"}


def test_normalize_block_folds_loose_fields_under_nested_content():
    block = normalize_block({"id": "a", "type": "bio", "title": "t", "content": {"text": "x"}, "order": 7}, 0)
    assert block.id == "a"
    assert block.order == 7
    assert block.content == {"title": "t", "text": "x"}


def test_normalize_blocks_rejects_non_lists():
    assert normalize_blocks(None) == []
    assert normalize_blocks({"type": "hero"}) == []
    assert [b.type for b in normalize_blocks([{"type": "gallery"}, "junk"])] == ["gallery", "hero"]


def test_branding_defaults_and_merge():
    branding = normalize_branding({"primaryColor": "", "fontBody": "Lato", "bogus": 1})
    assert branding.primary_color == DEFAULT_BRANDING.primary_color
    assert branding.font_body == "Lato"
    assert branding.logo_url is None

    once = merge_branding(branding, {"accentColor": "#000"})
    assert merge_branding(once, {"accentColor": "#000"}) == once
    assert once.to_dict()["accentColor"] == "#000"
    assert merge_branding(branding, {}) is branding


def test_render_unknown_block_gets_placeholder():
    html = render_block(SiteBlock(id="x", type="marquee_wall"), 0)
    assert "Marquee Wall Block" in html
    assert type_label(None) == "Unknown"


def test_render_escapes_content_and_sizes_viewport():
    blocks = [SiteBlock(id="h", type="hero", content={"title": "<script>x</script>"})]
    html = render_site("Gala", blocks, view_mode="mobile")
    assert "&lt;script&gt;" in html
    assert "<script>x" not in html
    assert "375px" in html
    assert 'data-view-mode="desktop"' in render_site("Gala", blocks, view_mode="widescreen")


def test_render_empty_site():
    assert "No blocks yet" in render_site("Empty", [])


def test_create_site_enforces_tier_limit(app, make_member):
    gold = make_member(email="gold@example.com", tier="gold")
    ctx = MemberContext.for_member(gold)
    site = service.create_site(ctx, "My Studio")
    assert site.slug == "my-studio"
    assert site.status == "draft"
    with pytest.raises(TierLimitReached) as exc:
        service.create_site(ctx, "Second")
    assert "allows 1 site" in exc.value.message


def test_create_site_requires_gold(app, make_member):
    silver = make_member(email="silver@example.com", tier="silver")
    with pytest.raises(TierLimitReached):
        service.create_site(MemberContext.for_member(silver), "Nope")


def test_duplicate_slug_rejected(app, make_member):
    a = make_member(email="a@example.com", tier="platinum")
    b = make_member(email="b@example.com", tier="platinum")
    service.create_site(MemberContext.for_member(a), "Gala Night")
    with pytest.raises(ValidationError) as exc:
        service.create_site(MemberContext.for_member(b), "Gala  Night!")
    assert exc.value.message == service.DUPLICATE_SLUG_MESSAGE


def test_template_access():
    assert service.can_access_template("platinum", "platinum")
    assert service.can_access_template("gold", None)
    assert not service.can_access_template("gold", "platinum")
    assert not service.can_access_template("silver", "gold")


def test_builder_edits_and_saves(app, member):
    site = service.create_site(MemberContext.for_member(member), "Atelier")
    builder = SiteBuilder(site)
    builder.add_block("hero", {"title": "Welcome"})
    builder.add_block("bio")
    assert builder.selected_index == 1
    builder.insert_generated_content("Crafted copy")
    builder.move_block(1, 0)
    assert [b.type for b in builder.blocks] == ["bio", "hero"]
    assert [b.order for b in builder.blocks] == [0, 1]
    builder.update_branding({"secondaryColor": "#abcdef"})
    assert builder.has_changes

    saved = builder.save()
    assert not builder.has_changes
    assert saved.content[0]["content"] == {"text": "Crafted copy"}
    assert saved.branding["secondaryColor"] == "#abcdef"

    published = SiteBuilder(saved).publish()
    assert published.status == "published"
    assert published.published_at is not None


def test_builder_rejects_bad_edits(app, member):
    builder = SiteBuilder(service.create_site(MemberContext.for_member(member), "Edits"))
    with pytest.raises(ValidationError):
        builder.add_block("carousel")
    with pytest.raises(ValidationError):
        builder.update_block(5, {"content": {}})
    builder.add_block("bio")
    with pytest.raises(ValidationError):
        builder.update_block(0, {"colour": "red"})
    with pytest.raises(ValidationError):
        builder.update_block(0, {"order": True})
    builder.select_block(None)
    with pytest.raises(ValidationError):
        builder.insert_generated_content("text")


def test_site_routes(app, client, member, login):
    assert client.get("/atelier/sites").status_code == 401
    login(member)

    r = client.post("/atelier/sites", json={"name": "Maison"})
    assert r.status_code == 201
    site_id = r.get_json()["site"]["id"]

    r = client.post("/atelier/sites", json={"name": "Another"})
    assert r.status_code == 403

    r = client.patch(f"/atelier/sites/{site_id}", json={
        "content": [{"type": "contact", "email": "hello@maison.com"}],
        "branding": {"primaryColor": "#222222"},
    })
    assert r.status_code == 200

    r = client.get(f"/atelier/sites/{site_id}/preview?view=tablet")
    assert r.status_code == 200
    assert b"hello@maison.com" in r.data
    assert b"768px" in r.data
    assert b"#222222" in r.data

    r = client.get("/atelier/sites")
    assert r.get_json()["can_create"] is False


def test_silver_cannot_use_atelier_routes(app, client, make_member, login):
    login(make_member(email="s@example.com", tier="silver"))
    r = client.post("/atelier/sites", json={"name": "Mine"})
    assert r.status_code == 403
    assert "Gold or Platinum" in r.get_json()["error"]


def test_content_assist_falls_back_to_functions(app, client, member, login, functions):
    functions.responses["generate-site-content"] = {"content": "Timeless elegance."}
    login(member)
    r = client.post("/atelier/assist", json={"prompt": "Write a bio", "blockType": "bio"})
    assert r.status_code == 200
    assert r.get_json()["content"] == "Timeless elegance."


def test_normalize_bare_bio_block():
    [block] = normalize_blocks([{"type": "bio", "text": "hi"}])
    assert (block.order, block.type, block.content) == (0, "bio", {"text": "hi"})
    assert block.id


VALID_CONTENT = {
    "hero": ({"title": "Maison Laurent", "subtitle": "Since 1962"}, "Since 1962"),
    "bio": ({"text": "First para\n\nSecond para"}, "<p>Second para</p>"),
    "story": ({"heading": "Our Story"}, "Our Story"),
    "mission": ({"text": "Quiet luxury"}, "Quiet luxury"),
    "philosophy": ({}, "Use Orla AI"),
    "event-details": ({"date": "12 June", "venue": "Villa Erba", "dressCode": "Black tie"}, "Black tie"),
    "rsvp": ({"deadline": "1 May"}, "Kindly respond by 1 May."),
    "gallery": ({"images": ["https://img/1.jpg", {"url": "https://img/2.jpg", "caption": "Lake"}]},
                "<figcaption>Lake</figcaption>"),
    "contact": ({"email": "hello@maison.com", "phone": "+39 031"}, "+39 031"),
    "achievements": ({"stats": [{"value": "40", "label": "Years"}]}, "Years"),
    "impact": ({}, "Global Partners"),
    "team": ({"members": [{"name": "Ada", "role": "Founder"}]}, "Founder"),
    "initiatives": ({"items": [{"title": "Scholarships"}]}, "Scholarships"),
    "portfolio": ({}, "Portfolio item 3"),
}

GARBAGE_CONTENT = {
    "title": ["not", "text"],
    "subtitle": {"nested": True},
    "text": 42,
    "heading": None,
    "date": {"day": 1},
    "images": [3, None, {"url": ["x"]}, {"caption": "no url"}],
    "stats": "lots",
    "members": [1, "two", None],
    "items": {"title": "not a list"},
    "email": False,
    "backgroundImage": 7.5,
}


@pytest.mark.parametrize("block_type", sorted(VALID_CONTENT))
def test_every_block_type_renders(block_type):
    content, expected = VALID_CONTENT[block_type]
    html = render_block(SiteBlock(id="b", type=block_type, content=content), 0)
    assert expected in html
    assert f'data-block-type="{block_type}"' in html


@pytest.mark.parametrize("block_type", sorted(VALID_CONTENT))
def test_garbage_content_still_renders(block_type):
    html = render_block(SiteBlock(id="b", type=block_type, content=dict(GARBAGE_CONTENT)), 0)
    assert 'class="atelier-block' in html
    assert "not a list" not in html

    html = render_block(SiteBlock(id="b", type=block_type, content="not a dict"), 1)
    assert 'data-index="1"' in html


def test_stats_block_defaults_by_kind():
    assert "Impact" in render_block(SiteBlock(id="i", type="impact"), 0)
    assert "Achievements" in render_block(SiteBlock(id="a", type="achievements", content={"stats": [{}]}), 0)


def test_patch_rejects_malformed_edits(app, client, member, login):
    login(member)
    site_id = client.post("/atelier/sites", json={"name": "Maison"}).get_json()["site"]["id"]

    for body in (
        {"block_updates": [3]},
        {"block_updates": {"index": 0}},
        {"name": 42},
        {"branding": ["#fff"]},
    ):
        r = client.patch(f"/atelier/sites/{site_id}", json=body)
        assert r.status_code == 400, body
        assert "error" in r.get_json()

    assert client.post("/atelier/sites", json={"name": ["x"]}).status_code == 400
    assert client.get(f"/atelier/sites/{site_id}").get_json()["site"]["name"] == "Maison"


def test_only_slug_conflicts_read_as_duplicate(app, member):
    from sqlalchemy.exc import IntegrityError

    site = service.create_site(MemberContext.for_member(member), "Studio")
    site.name = None
    with pytest.raises(IntegrityError):
        service._commit_site(site)
