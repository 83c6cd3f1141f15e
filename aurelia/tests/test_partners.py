import csv
from io import StringIO

import pytest

from concierge.errors import ValidationError
from concierge.extensions import db
from concierge.models_partners import OutreachLog, OutreachTemplate
from concierge.partners import outreach


def _prospect(company, **kw):
    data = {"company_name": company, "category": kw.pop("category", "yacht_charter")}
    data.update(kw)
    return outreach.add_prospect(data)


def test_add_prospect_validates_and_lowercases_email(app):
    with pytest.raises(ValidationError):
        outreach.add_prospect({"company_name": "Nameless"})
    with pytest.raises(ValidationError):
        outreach.add_prospect({"company_name": "Azure", "category": "yacht_charter", "priority": "urgent"})
    p = _prospect("Azure Yachts", email="  Hello@Azure.COM ")
    assert p.email == "hello@azure.com"
    assert p.status == "new"
    assert p.priority == "medium"


def test_filter_and_stats(app):
    a = _prospect("Azure Yachts", email="a@azure.com", priority="high")
    b = _prospect("Skyline Jets", category="private_aviation", contact_name="Mara Azure")
    c = _prospect("Vault Security", category="security", email="ops@vault.io")
    outreach.change_status(c, "converted")

    everything = [a, b, c]
    assert outreach.filter_prospects(everything, search="AZURE") == [a, b]
    assert outreach.filter_prospects(everything, priority="high") == [a]
    assert outreach.filter_prospects(everything, category="all", status="converted") == [c]
    assert outreach.prospect_stats(everything) == {
        "total": 3, "new": 2, "contacted": 0, "interested": 0, "converted": 1,
    }


def test_bulk_eligibility_skips_closed_and_emailless(app):
    a = _prospect("Azure Yachts", email="a@azure.com")
    b = _prospect("No Email Co")
    c = _prospect("Declined Ltd", email="d@declined.com")
    outreach.change_status(c, "declined")
    assert outreach.eligible_for_bulk_outreach([a, b, c]) == [a]


def test_render_template_text(app):
    p = _prospect("Azure Yachts", category="yacht_charter")
    text = "Dear {{contact_name}} at {{company_name}}, re {{service_type}}. {{sender_name}} <{{sender_email}}>"
    out = outreach.render_template_text(text, p, sender={"name": "Iris", "email": "iris@aurelia.com"})
    assert out == "Dear Partner Team at Azure Yachts, re Yacht Charter. Iris <iris@aurelia.com>"
    assert "The Aurelia Team" in outreach.render_template_text("{{sender_name}}", p)


def test_send_outreach_logs_and_marks_contacted(app, functions):
    p = _prospect("Azure Yachts", email="a@azure.com")
    with pytest.raises(ValidationError):
        outreach.send_outreach(p, "Hello", "  ")

    entry = outreach.send_outreach(p, "Hello", "Line one\nLine two")
    assert entry.subject == "Hello"
    assert p.status == "contacted"
    assert p.last_contacted_at is not None
    assert functions.named("send-email") == [
        {"to": "a@azure.com", "subject": "Hello", "html": "Line one<br>Line two"},
    ]


def test_bulk_outreach_counts_failures_and_continues(app, functions):
    targets = [_prospect(f"Partner {i}", email=f"p{i}@example.com") for i in range(3)]
    functions.fail("partner-invite", "mailbox full", times=1)
    sleeps = []

    result = outreach.bulk_outreach(targets, custom_subject="Join us", custom_message="Hi", delay=0.5,
                                    sleep=sleeps.append)
    assert (result.total, result.sent, result.failed) == (3, 2, 1)
    assert result.failures[0]["company_name"] == "Partner 0"
    assert "mailbox full" in result.failures[0]["error"]
    assert sleeps == [0.5, 0.5]
    assert all(body["custom_message"] == "Hi" for body in functions.named("partner-invite"))


def test_bulk_outreach_without_targets(app):
    with pytest.raises(ValidationError) as exc:
        outreach.bulk_outreach([_prospect("No Email Co")])
    assert exc.value.message == "No prospects match your filters."


def test_invite_payload_omits_empty_message(app):
    p = _prospect("Azure Yachts", email="a@azure.com")
    assert "custom_message" not in outreach.invite_payload(p, "Subject only", "")


def test_export_csv(app):
    _prospect("Azure, Yachts", email="a@azure.com", category="dining")
    rows = list(csv.reader(StringIO(outreach.export_csv(outreach.list_prospects()))))
    assert rows[0] == outreach.CSV_HEADER
    assert rows[1][:4] == ["Azure, Yachts", "", "a@azure.com", "Fine Dining"]


def test_routes_are_admin_only(app, client, member, login):
    assert client.get("/admin/partners/prospects").status_code == 401
    login(member)
    assert client.get("/admin/partners/prospects").status_code == 403


def test_admin_workflow(app, client, admin, login, functions):
    login(admin)
    r = client.post("/admin/partners/prospects", json={
        "company_name": "Azure Yachts", "category": "yacht_charter", "email": "a@azure.com",
    })
    assert r.status_code == 201
    pid = r.get_json()["prospect"]["id"]

    tpl = OutreachTemplate(name="Intro", subject="Partnering with {{company_name}}",
                           body="Hello {{contact_name}}")
    db.session.add(tpl)
    db.session.commit()

    r = client.post(f"/admin/partners/prospects/{pid}/outreach", json={"template_id": tpl.id})
    assert r.status_code == 200
    assert functions.named("send-email")[0]["subject"] == "Partnering with Azure Yachts"
    assert OutreachLog.query.filter_by(prospect_id=pid).count() == 1

    r = client.post(f"/admin/partners/prospects/{pid}/status",
                    json={"status": "interested", "follow_up_date": "2026-11-02"})
    assert r.status_code == 200
    assert r.get_json()["prospect"]["status"] == "interested"

    r = client.post(f"/admin/partners/prospects/{pid}/status", json={"status": "interested", "follow_up_date": "soon"})
    assert r.status_code == 400

    r = client.get("/admin/partners/prospects?q=azure")
    data = r.get_json()
    assert len(data["prospects"]) == 1
    assert data["stats"]["interested"] == 1

    r = client.get("/admin/partners/export")
    assert r.headers["Content-Type"].startswith("text/csv")
    assert "partner-prospects-" in r.headers["Content-Disposition"]
