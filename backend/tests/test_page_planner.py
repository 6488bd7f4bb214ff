import pytest

from promptsite.page_planner import (
    build_nav_links,
    extract_page_names_fallback,
    extract_page_names_with_ai,
    normalize_page_names,
    page_filename,
    page_label,
)


def test_explicit_page_list():
    assert extract_page_names_fallback("A bakery site. pages: home, about, contact") == [
        "home",
        "about",
        "contact",
    ]


def test_explicit_list_without_home_gets_home_first():
    assert extract_page_names_fallback("Pages: Our Story and Menu") == ["home", "our-story", "menu"]


def test_keyword_fallback():
    pages = extract_page_names_fallback("A SaaS site with pricing, features and a blog, plus docs")
    assert pages == ["home", "pricing", "blog", "features", "docs"]


def test_plain_landing_page_is_just_home():
    assert extract_page_names_fallback("a landing page for my app") == ["home"]


def test_fallback_respects_max_pages():
    pages = extract_page_names_fallback("about contact pricing blog team services", max_pages=3)
    assert pages == ["home", "about", "contact"]


def test_normalize_dedupes_and_caps():
    names = ["Index", "About Us", "about-us", "Contact.html", *[f"p{i}" for i in range(20)]]
    pages = normalize_page_names(names)
    assert pages[:3] == ["home", "about-us", "contact"]
    assert len(pages) == 10


@pytest.mark.anyio
async def test_ai_plan_is_normalized(provider):
    provider.complete.return_value = 'Sure: ["Home", "About", "Case Studies", "contact"]'
    pages = await extract_page_names_with_ai(provider, "consulting firm")
    assert pages == ["home", "about", "case-studies", "contact"]
    assert provider.complete.await_args.kwargs["model"] == "fast-model"


@pytest.mark.anyio
async def test_ai_failure_uses_fallback(provider):
    provider.complete.side_effect = RuntimeError("boom")
    pages = await extract_page_names_with_ai(provider, "a gym with pricing and team pages")
    assert pages == ["home", "pricing", "team"]


@pytest.mark.anyio
async def test_unparseable_ai_output_uses_fallback(provider):
    provider.complete.return_value = "home, about"
    pages = await extract_page_names_with_ai(provider, "portfolio for a photographer")
    assert pages[0] == "home"
    assert "portfolio" in pages
    assert len(pages) <= 10


@pytest.mark.anyio
async def test_ai_plan_capped_by_max_pages(provider):
    provider.complete.return_value = '["home", "a", "b", "c", "d"]'
    pages = await extract_page_names_with_ai(provider, "big site", max_pages=3)
    assert pages == ["home", "a", "b"]


def test_filenames_and_nav():
    assert page_filename("home") == "index.html"
    assert page_filename("case-studies") == "case-studies.html"
    assert page_label("case-studies") == "Case Studies"
    assert build_nav_links(["home", "about"]) == [
        {"name": "home", "label": "Home", "href": "index.html"},
        {"name": "about", "label": "About", "href": "about.html"},
    ]
