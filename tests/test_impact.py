from compliance_watch.core.models import COMPLIANCE_CATEGORIES, ClassificationResult, TemplateRef
from compliance_watch.validate import map_impact

TEMPLATES = [
    TemplateRef(id="t1", title="California Residential Lease Agreement", template_type="lease", jurisdiction="CA"),
    TemplateRef(id="t2", title="California Notice of Rent Increase", template_type="notice", jurisdiction="CA"),
    TemplateRef(id="t3", title="Texas Residential Lease Agreement", template_type="lease", jurisdiction="TX"),
]


def _result(ids, cats):
    return ClassificationResult(
        relevance_level="high",
        rationale="r",
        affected_template_ids=tuple(ids),
        affected_compliance_categories=tuple(cats),
        method="llm",
    )


def test_output_is_always_a_subset_of_active_templates_and_known_categories():
    raw = _result(["t2", "t3", "bogus", "t1"], ["fair_housing", "pets", "deposits"])
    out = map_impact(raw, TEMPLATES, "CA")

    assert set(out.affected_template_ids) <= {"t1", "t2"}
    assert set(out.affected_compliance_categories) <= set(COMPLIANCE_CATEGORIES)
    assert out.affected_template_ids == ("t2", "t1")
    assert out.affected_compliance_categories == ("fair_housing", "deposits")


def test_other_jurisdiction_templates_are_dropped():
    out = map_impact(_result(["t1"], []), TEMPLATES, "TX")
    assert out.affected_template_ids == ()


def test_duplicates_are_removed_and_other_fields_kept():
    raw = _result(["t1", "t1"], ["evictions", "evictions"])
    out = map_impact(raw, TEMPLATES, "CA")
    assert out.affected_template_ids == ("t1",)
    assert out.affected_compliance_categories == ("evictions",)
    assert out.relevance_level == raw.relevance_level
    assert out.rationale == raw.rationale
    assert out.method == "llm"


def test_no_templates_means_no_template_impact():
    assert map_impact(_result(["t1"], ["deposits"]), [], "CA").affected_template_ids == ()
