import pytest

from promptsite.quick_edit import (
    QuickEdit,
    apply_quick_edit,
    detect_quick_edit,
    has_site_files,
    has_substantial_content,
)


@pytest.mark.parametrize(
    "prompt, old, new",
    [
        ('change "ELEVATE" to "NovaCorp"', "ELEVATE", "NovaCorp"),
        ("Change “Acme Inc” into “Globex”", "Acme Inc", "Globex"),
        ("replace Acme with Globex", "Acme", "Globex"),
        ("change the title Sunrise to Sunset", "Sunrise", "Sunset"),
        ("rename ELEVATE to NovaCorp.", "ELEVATE", "NovaCorp"),
        ("ELEVATE to NovaCorp", "ELEVATE", "NovaCorp"),
        ('"Book now" to "Reserve"', "Book now", "Reserve"),
    ],
)
def test_detects_literal_replacements(prompt, old, new):
    assert detect_quick_edit(prompt) == QuickEdit(old_text=old, new_text=new)


@pytest.mark.parametrize(
    "prompt",
    [
        "make the header sticky and add a pricing table",
        "add a contact page",
        "",
    ],
)
def test_non_literal_prompts_are_not_quick_edits(prompt):
    assert detect_quick_edit(prompt) is None


def test_overlong_tokens_are_rejected():
    long_text = "x" * 60
    assert detect_quick_edit(f'change "{long_text}" to "short"') is None


def test_apply_counts_replacements_across_files():
    files = {
        "index.html": "<h1>ELEVATE</h1><footer>© elevate</footer>",
        "about.html": "<p>About Elevate</p>",
        "contact.html": "<p>Say hi</p>",
        "_reasoning": "ELEVATE",
    }
    result = apply_quick_edit(files, QuickEdit(old_text="ELEVATE", new_text="NovaCorp"))

    assert result.replacements == 3
    assert result.files_changed == 2
    assert result.files["index.html"] == "<h1>NovaCorp</h1><footer>© NovaCorp</footer>"
    assert result.files["contact.html"] == "<p>Say hi</p>"
    assert "_reasoning" not in result.files


def test_replacement_text_is_literal():
    files = {"index.html": "<p>price: 10</p>"}
    result = apply_quick_edit(files, QuickEdit(old_text="10", new_text=r"\1 $20"))
    assert result.files["index.html"] == r"<p>price: \1 $20</p>"


def test_special_characters_in_old_text_are_escaped():
    files = {"index.html": "<p>a.b a+b</p>"}
    result = apply_quick_edit(files, QuickEdit(old_text="a.b", new_text="x"))
    assert result.files["index.html"] == "<p>x a+b</p>"
    assert result.replacements == 1


def test_zero_matches_leaves_files_unchanged():
    files = {"index.html": "<p>hello</p>"}
    result = apply_quick_edit(files, QuickEdit(old_text="missing", new_text="x"))
    assert result.replacements == 0
    assert result.files == files


def test_has_substantial_content():
    assert not has_substantial_content({})
    assert not has_substantial_content(None)
    assert not has_substantial_content({"index.html": "<p>short</p>"})
    assert not has_substantial_content({"_reasoning": "x" * 500})
    assert has_substantial_content({"index.html": "x" * 101})


@pytest.mark.parametrize(
    "prompt",
    [
        "Please change ELEVATE to NovaCorp",
        "can you change ELEVATE to NovaCorp?",
        "Could you rename ELEVATE to NovaCorp",
        "please replace ELEVATE with NovaCorp",
    ],
)
def test_polite_phrasings_are_detected(prompt):
    assert detect_quick_edit(prompt) == QuickEdit(old_text="ELEVATE", new_text="NovaCorp")


def test_has_site_files():
    assert not has_site_files({})
    assert not has_site_files({"_reasoning": "x"})
    assert has_site_files({"index.html": "<h1>Hi</h1>"})
