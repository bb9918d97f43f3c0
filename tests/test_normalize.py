from datetime import date

from fakes import cl_case, fr_doc, os_bill

from compliance_watch.normalize import (
    dedupe_records,
    normalize_court_listener_case,
    normalize_federal_register,
    normalize_open_states_bill,
    parse_date,
)
from compliance_watch.sources.payloads import CourtListenerCase, FederalRegisterDocument, OpenStatesBill


def test_federal_register_document_normalizes():
    doc = FederalRegisterDocument.from_json(fr_doc("2024-01234"))
    rec = normalize_federal_register(doc)

    assert rec.external_id == "fr_2024-01234"
    assert rec.jurisdiction == "FED"
    assert rec.source_kind == "regulatory_document"
    assert rec.status_label == "Final Rule"
    assert rec.description == "Updates fair housing rules for landlords."
    assert rec.last_action_date == date(2024, 3, 1)
    assert rec.last_action_text == "Published: 2024-03-01"
    assert rec.text_url.endswith(".pdf")


def test_federal_register_fallbacks_for_sparse_documents():
    doc = FederalRegisterDocument.from_json(
        {"document_number": "2024-9", "type": "Presidential Document", "title": "Housing order", "action": "Executive order."}
    )
    rec = normalize_federal_register(doc)

    assert rec.status_label == "Executive Order"
    assert rec.description == "Housing order"
    assert rec.last_action_text == "Executive order."
    assert rec.last_action_date is None
    assert rec.source_url == ""


def test_federal_register_without_document_number_is_skipped():
    assert FederalRegisterDocument.from_json({"title": "no number"}) is None
    assert FederalRegisterDocument.from_json("not a dict") is None


def test_last_action_uses_order_field_not_array_position():
    payload = os_bill(
        "ocd-bill/abc",
        actions=[
            {"date": "2024-04-10", "description": "Passed committee", "classification": ["committee-passage"], "order": 3},
            {"date": "2024-02-01", "description": "Introduced", "classification": ["introduction"], "order": 1},
            {"date": "2024-03-01", "description": "Referred", "classification": ["referral-committee"], "order": 2},
        ],
    )
    rec = normalize_open_states_bill(OpenStatesBill.from_json(payload, "CA"), "CA")

    assert rec.status_label == "Passed Committee"
    assert rec.last_action_text == "Passed committee"
    assert rec.last_action_date == date(2024, 4, 10)


def test_equal_order_first_occurrence_wins():
    payload = os_bill(
        "ocd-bill/tie",
        actions=[
            {"date": "2024-01-01", "description": "First", "classification": [], "order": 2},
            {"date": "2024-01-02", "description": "Second", "classification": [], "order": 2},
        ],
    )
    rec = normalize_open_states_bill(OpenStatesBill.from_json(payload, "TX"), "TX")
    assert rec.last_action_text == "First"
    assert rec.status_label == "First"
    assert rec.last_action_date == date(2024, 1, 1)


def test_wrong_typed_fields_do_not_break_normalization():
    payload = os_bill(
        "ocd-bill/odd",
        title=42,
        abstracts=[{"abstract": 5}, {"abstract": None}, "stray", {"abstract": "Caps deposits."}],
        sources=[{"url": 7}, {"url": ["x"]}],
        actions=[{"date": 20240101, "description": None, "classification": "introduction", "order": "3"}],
        versions=[{"note": 1, "date": None, "links": [{"url": 9}]}],
        subject="housing",
        openstates_url=None,
    )
    bill = OpenStatesBill.from_json(payload, "CA")
    rec = normalize_open_states_bill(bill, "CA")

    assert bill.abstracts == ("5", "Caps deposits.")
    assert rec.title == "42"
    assert rec.description == "5"
    assert rec.source_url == "7"
    assert rec.last_action_date is None
    assert rec.status_label == "Unknown"


def test_open_states_bill_with_missing_fields_is_total():
    bill = OpenStatesBill.from_json({"id": "ocd-bill/bare"}, "UT")
    rec = normalize_open_states_bill(bill, "UT")

    assert rec.external_id == "pp_ocd-bill/bare"
    assert rec.title == "ocd-bill/bare"
    assert rec.description == rec.title
    assert rec.status_label == "Unknown"
    assert rec.last_action_date is None
    assert rec.last_action_text is None
    assert rec.source_url == "https://open.pluralpolicy.com/"
    assert rec.text_url is None


def test_open_states_url_falls_back_to_first_source_and_latest_version():
    payload = os_bill(
        "ocd-bill/src",
        openstates_url=None,
        versions=[
            {"note": "Amended", "date": "2024-03-01", "links": [{"url": "https://leg.example/v2.pdf"}]},
            {"note": "Introduced", "date": "2024-01-01", "links": [{"url": "https://leg.example/v1.pdf"}]},
        ],
    )
    rec = normalize_open_states_bill(OpenStatesBill.from_json(payload, "CA"), "CA")
    assert rec.source_url == "https://legislature.example/hb1"
    assert rec.text_url == "https://leg.example/v2.pdf"


def test_dedupe_keeps_first_occurrence():
    a = normalize_federal_register(FederalRegisterDocument.from_json(fr_doc("1", title="First")))
    b = normalize_federal_register(FederalRegisterDocument.from_json(fr_doc("1", title="Second")))
    c = normalize_federal_register(FederalRegisterDocument.from_json(fr_doc("2")))

    out = dedupe_records([a, b, c])
    assert [r.external_id for r in out] == ["fr_1", "fr_2"]
    assert out[0].title == "First"


def test_parse_date_accepts_timestamps_and_rejects_garbage():
    assert parse_date("2024-05-06T10:00:00+00:00") == date(2024, 5, 6)
    assert parse_date("2024-02-30") is None
    assert parse_date("yesterday") is None
    assert parse_date(None) is None


def test_court_listener_case_normalizes():
    case = CourtListenerCase.from_json(cl_case(4321), "CA")
    rec = normalize_court_listener_case(case, "CA")

    assert rec.external_id == "cl_4321"
    assert rec.jurisdiction == "CA"
    assert rec.source_kind == "court_case"
    assert rec.native_number == "98 Cal. App. 5th 101"
    assert rec.title == "Smith v. Oakwood Apartments LLC"
    assert rec.description.endswith("residential landlord-tenant dispute")
    assert rec.status_label == "Published"
    assert rec.last_action_date == date(2024, 1, 15)
    assert rec.last_action_text == "Filed: 2024-01-15"
    assert rec.source_url == "https://www.courtlistener.com/opinion/4321/smith-v-oakwood/"
    assert rec.excerpt == "The landlord withheld the security deposit."


def test_court_listener_snake_case_cluster_and_citation_fallbacks():
    cluster = {
        "id": 55,
        "case_name": "Doe v. Roe",
        "case_number": "22-cv-9",
        "date_filed": "2023-12-01",
        "citations": [{"volume": 12, "reporter": "F.4th", "page": "300"}],
        "precedential_status": "Unpublished",
        "snippet": "tenant",
    }
    rec = normalize_court_listener_case(CourtListenerCase.from_json(cluster, "TX"), "TX")
    assert rec.native_number == "12 F.4th 300"
    assert rec.status_label == "Unpublished"
    assert rec.excerpt == "tenant"

    cluster.pop("citations")
    assert normalize_court_listener_case(CourtListenerCase.from_json(cluster, "TX"), "TX").native_number == "22-cv-9"


def test_court_listener_case_with_missing_fields_is_total():
    case = CourtListenerCase.from_json({"cluster_id": 9, "caseName": 3, "citation": "x", "opinions": "y"}, "UT")
    rec = normalize_court_listener_case(case, "UT")

    assert rec.external_id == "cl_9"
    assert rec.title == "3"
    assert rec.native_number == "Cluster ID: 9"
    assert rec.status_label == "Unknown"
    assert rec.last_action_date is None
    assert rec.last_action_text is None
    assert rec.source_url == "https://www.courtlistener.com/"
    assert rec.excerpt == ""
    assert CourtListenerCase.from_json({"caseName": "no id"}, "UT") is None
