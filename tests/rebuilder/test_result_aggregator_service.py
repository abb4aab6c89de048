# tests/rebuilder/test_result_aggregator_service.py
import pytest

from fetcher.model import AssetKind, AssetReference
from rebuilder.model import FunctionalityView, VisualView
from rebuilder.services.result_aggregator_service import (
    Bucket,
    ResultAggregatorService,
    destination,
    functional_bucket,
    summarize_content,
    visual_bucket,
)
from tokenstream.model import AttributeRecord, ClassificationOutcome, ClassifierFailure
from tokenstream.services.stream_parse_service import parse_tokens


def tok(kind, value):
    return {"kind": kind, "value": value}


@pytest.fixture
def page():
    """nav > a, form > (input, button), div > p, header."""
    return parse_tokens([
        tok("tag_open", "nav"),
        tok("attribute", 'class="main-nav"'),
        tok("tag_open", "a"),
        tok("attribute", 'href="/"'),
        tok("word", "Home"),
        tok("tag_close", "a"),
        tok("tag_close", "nav"),
        tok("tag_open", "form"),
        tok("attribute", 'action="/search"'),
        tok("tag_open", "input"),
        tok("attribute", 'name="q"'),
        tok("tag_close", "input"),
        tok("tag_open", "button"),
        tok("word", "Go"),
        tok("tag_close", "button"),
        tok("tag_close", "form"),
        tok("tag_open", "div"),
        tok("attribute", 'class="box"'),
        tok("tag_open", "p"),
        tok("word", "Hello"),
        tok("tag_close", "p"),
        tok("tag_close", "div"),
        tok("tag_open", "header"),
        tok("tag_close", "header"),
    ])


@pytest.fixture
def views(page):
    return ResultAggregatorService(page).aggregate()


def test_functional_partition(views):
    functionality, _ = views

    assert set(functionality.interactive_elements) == {"a", "input", "button"}
    assert functionality.interactive_elements["button"][0]["content"] == ["Go"]
    assert functionality.interactive_elements["a"][0]["attributes"][0]["value"] == "/"
    assert set(functionality.forms) == {"form"}
    assert functionality.navigational_elements == {}


def test_form_entry_lists_its_children(views):
    functionality, _ = views
    form = functionality.forms["form"][0]

    assert form["position"] == 7
    assert form["content"] is None
    assert [c["name"] for c in form["children"]] == ["input", "button"]
    assert form["children"][1]["content"] == ["Go"]


def test_visual_partition(views):
    _, visual = views

    assert set(visual.containers) == {"div"}
    assert visual.containers["div"][0]["children_count"] == 1
    assert visual.containers["div"][0]["content_summary"] == "No content"
    assert set(visual.layout_elements) == {"nav", "header"}
    assert visual.content_blocks["p"][0]["content"] == ["Hello"]


def test_html_structure_levels(views):
    _, visual = views

    assert [(s["name"], s["level"]) for s in visual.html_structure] == [
        ("nav", 0), ("a", 1), ("form", 0), ("input", 1), ("button", 1), ("div", 0), ("p", 1), ("header", 0)
    ]
    assert visual.html_structure[0]["attributes"] == ["class=main-nav"]


def test_counters(views):
    functionality, visual = views

    assert functionality.ai_analysis["interactive_elements_count"] == 3
    assert functionality.ai_analysis["forms_count"] == 1
    assert functionality.ai_analysis["navigation_elements_count"] == 0
    assert functionality.ai_analysis["classifier_failure"] is None
    assert visual.ai_analysis == {
        "containers_count": 1,
        "layout_elements_count": 2,
        "content_blocks_count": 1,
        "images_count": 0,
        "structure_preview_count": 8,
    }


def test_button_and_div_structure_levels():
    result = parse_tokens([
        tok("tag_open", "div"),
        tok("attribute", 'class="box"'),
        tok("tag_open", "button"),
        tok("word", "Submit"),
        tok("tag_close", "button"),
        tok("tag_close", "div"),
    ])
    functionality, visual = ResultAggregatorService(result).aggregate()

    assert [(s["name"], s["level"]) for s in visual.html_structure] == [("div", 0), ("button", 1)]
    assert functionality.interactive_elements["button"][0]["content"] == ["Submit"]
    assert visual.containers["div"][0]["children_count"] == 1


def test_nested_navigation_children_use_the_matching_close():
    result = parse_tokens([
        tok("tag_open", "div"),
        tok("attribute", 'id="menu"'),
        tok("attribute", 'onclick="toggle()"'),
        tok("tag_open", "div"),
        tok("tag_open", "a"),
        tok("tag_close", "a"),
        tok("tag_close", "div"),
        tok("tag_open", "span"),
        tok("tag_close", "span"),
        tok("tag_close", "div"),
        tok("tag_open", "p"),
        tok("tag_close", "p"),
    ])
    functionality, visual = ResultAggregatorService(result).aggregate()

    outer = functionality.navigational_elements["div"][0]
    assert [c["name"] for c in outer["children"]] == ["div", "a", "span"]
    # Every div is functional once one of them is, so none are counted as containers.
    assert "div" not in visual.containers


def test_assets_and_classification_counters():
    result = parse_tokens([
        tok("tag_open", "link"),
        tok("attribute", 'rel="stylesheet"'),
        tok("attribute", 'href="/a.css"'),
        tok("tag_close", "link"),
        tok("tag_open", "img"),
        tok("attribute", 'src="/b.png"'),
        tok("tag_close", "img"),
    ])
    result.assets[0].local_path = "mirrored_css/css_1.css"
    outcome = ClassificationOutcome(
        predicted_content={"img": "Visual element", "link": "Interactive element"},
        used_fallback=True,
        failure=ClassifierFailure.SINGLE_CLASS,
    )

    functionality, visual = ResultAggregatorService(result, outcome).aggregate()

    assert [a.url for a in functionality.css] == ["/a.css"]
    assert [a.url for a in visual.images] == ["/b.png"]
    analysis = functionality.ai_analysis
    assert analysis["css_files_count"] == 1
    assert analysis["image_files_count"] == 1
    assert analysis["resolved_assets_count"] == 1
    assert analysis["predicted_interactive_count"] == 1
    assert analysis["predicted_visual_count"] == 1
    assert analysis["classifier_fallback_used"] is True
    assert analysis["classifier_failure"] == "single_class"


def test_bucket_helpers():
    form_class = [AttributeRecord(tag="div", name="class", value="login-form")]
    nav_id = [AttributeRecord(tag="ul", name="id", value="top-menu")]

    assert functional_bucket("div", form_class) == Bucket.FORMS
    assert functional_bucket("ul", nav_id) == Bucket.NAVIGATION
    assert functional_bucket("button", []) == Bucket.INTERACTIVE
    assert visual_bucket("section") == Bucket.CONTAINERS
    assert visual_bucket("footer") == Bucket.LAYOUT
    assert visual_bucket("em") == Bucket.CONTENT_BLOCKS
    assert visual_bucket("table") is None

    functionality, visual = FunctionalityView(), VisualView()
    assert destination(Bucket.FORMS, functionality, visual) is functionality.forms
    assert destination(Bucket.LAYOUT, functionality, visual) is visual.layout_elements


def test_summarize_content():
    assert summarize_content(None) == "No content"
    assert summarize_content(["a", "b"]) == "a b"
    assert summarize_content(list("abcdef")) == "a b c... (6 items)"
