"""Tests for entity projection and phone / identity matching."""

import pytest

from analytics.lib.errors import InputContractError
from analytics.matcher import (
    CONTACT_NEW,
    CONTACT_REPEAT,
    CONTACT_RETURNING,
    IdentityIndex,
    build_call_phone_set,
    contact_kind,
    group_by_phone,
)
from analytics.projector import CanonicalLead, ensure_records


LEAD = {
    "id": "L1",
    "First_Name": "Asha",
    "Last_Name": "Rao",
    "Phone": "+91 98765 43210",
    "Owner": {"name": "Ravi", "id": "u1"},
    "Lead_Status": "Open",
    "Sub_Lead_Status": "NC1",
    "Created_Time": "2024-01-10T04:00:00Z",
    "Modified_Time": "2024-01-10T05:00:00Z",
}


class TestInputContract:
    @pytest.mark.parametrize("bad", ["leads", b"leads", {"id": 1}, 5])
    def test_rejects_non_collections(self, bad):
        with pytest.raises(InputContractError) as exc:
            ensure_records(bad, "leads")
        assert exc.value.details["collection"] == "leads"

    def test_none_is_empty(self):
        assert ensure_records(None, "calls") == []

    def test_drops_non_mapping_entries(self):
        assert ensure_records([1, {"id": "x"}, "y"], "calls") == [{"id": "x"}]


class TestProjection:
    def test_lead_fields(self, make_leads):
        lead = make_leads([LEAD])[0]
        assert lead.id == "L1"
        assert lead.name == "Asha Rao"
        assert lead.normalized_phone == "9876543210"
        assert lead.owner == "Ravi"
        assert lead.lead_sub_status == "NC1"
        assert lead.called is False
        assert lead.created_raw == "2024-01-10T04:00:00Z"

    def test_lead_name_default_keeps_match_name_clean(self, make_leads):
        lead = make_leads([{"First_Name": "Asha"}])[0]
        assert lead.name == "Asha Lead"
        assert lead.match_name == "asha"

    def test_called_via_dialled_phone(self, make_leads):
        lead = make_leads([LEAD], call_phones={"9876543210"})[0]
        assert lead.called is True

    def test_called_via_lead_activity(self, make_leads):
        lead = make_leads([{**LEAD, "Last_Call_Time": "2024-01-10T04:10:00Z"}])[0]
        assert lead.called is True

    def test_row_uses_placeholders(self, make_leads):
        row = make_leads([{"First_Name": "Asha"}])[0].to_row()
        assert row["leadStatus"] == "--"
        assert row["owner"] == "--"
        assert row["called"] is False

    def test_call_phone_from_subject(self, make_calls):
        call = make_calls([{
            "Subject": "Outgoing call to +91 98765 43210",
            "Call_Duration_in_seconds": "45",
            "What_Id": {"id": "L1"},
        }])[0]
        assert call.dialed_phone == "9876543210"
        assert call.duration_seconds == 45.0
        assert call.lead_ref_id == "L1"
        assert call.status == "Unknown"

    def test_subject_takes_last_phone_token(self, make_calls):
        call = make_calls([{"Subject": "From 080 2222 3333 to 98765 43210"}])[0]
        assert call.dialed_phone == "9876543210"

    def test_structured_phone_wins_over_subject(self, make_calls):
        call = make_calls([{"Dialled_Number": "9123456789", "Subject": "Call 98765 43210"}])[0]
        assert call.dialed_phone == "9123456789"

    def test_call_start_falls_back_to_created(self, make_calls):
        call = make_calls([{"Created_Time": "2024-01-10T04:00:00Z"}])[0]
        assert call.started_at is not None

    def test_task_completion(self, make_tasks):
        done, open_ = make_tasks([{"Status": "Completed"}, {"Status": "Not Started"}])
        assert done.completed is True
        assert open_.completed is False

    def test_lead_raw_defaults_to_read_only_empty_mapping(self):
        lead = CanonicalLead(
            id=None, name="Lead", phone=None, normalized_phone=None, owner="--",
            lead_status="", lead_sub_status="", created_raw=None, modified_raw=None,
            created_at=None, modified_at=None, called=False,
        )
        assert dict(lead.raw) == {}
        with pytest.raises(TypeError):
            lead.raw["x"] = 1

    def test_lead_keeps_raw_record(self, make_leads):
        lead = make_leads([LEAD])[0]
        assert lead.raw["Lead_Status"] == "Open"

    def test_deal_contact_name_lowercased(self, make_deals):
        deal = make_deals([{"Contact_Name": "Asha Rao", "Street": "HSR Layout"}])[0]
        assert deal.contact_name == "asha rao"
        assert deal.street == "HSR Layout"


class TestContactKinds:
    def test_kind_by_group_size(self):
        assert contact_kind(1) == CONTACT_NEW
        assert contact_kind(2) == CONTACT_RETURNING
        assert contact_kind(3) == CONTACT_REPEAT

    def test_group_by_phone_skips_empty_keys(self, make_leads):
        leads = make_leads([
            {"Phone": "8888888888"}, {"Phone": "+91 8888888888"}, {"Phone": ""},
        ])
        groups = group_by_phone(leads)
        assert list(groups) == ["8888888888"]
        assert len(groups["8888888888"]) == 2


class TestIdentityIndex:
    def test_resolve_by_id_before_phone(self, make_leads, make_calls):
        leads = make_leads([
            {"id": "L1", "Phone": "9000000001"},
            {"id": "L2", "Phone": "9000000002"},
        ])
        calls = make_calls([{"Dialled_Number": "9000000002", "What_Id": {"id": "L1"}}])
        index = IdentityIndex.build(leads, calls)
        assert index.resolve_lead(calls[0]).id == "L1"

    def test_resolve_by_phone(self, make_leads, make_calls):
        leads = make_leads([{"id": "L1", "Phone": "9000000001"}])
        calls = make_calls([{"Dialled_Number": "+91 90000 00001"}])
        index = IdentityIndex.build(leads, calls)
        assert index.resolve_lead(calls[0]).id == "L1"

    def test_unresolved_call(self, make_leads, make_calls):
        leads = make_leads([{"id": "L1", "Phone": "9000000001"}])
        calls = make_calls([{"Dialled_Number": "9999999999"}, {}])
        index = IdentityIndex.build(leads, calls)
        assert index.resolve_lead(calls[0]) is None
        assert index.resolve_lead(calls[1]) is None

    def test_returning_contact(self, make_leads):
        leads = make_leads([
            {"Phone": "8888888888", "Lead_Status": "Rejected"},
            {"Phone": "8888888888", "Lead_Status": "Rejected"},
        ])
        index = IdentityIndex.build(leads, [])
        assert index.classify_contact("8888888888") == CONTACT_RETURNING
        assert index.classify_contact(None) == CONTACT_NEW

    def test_call_phone_set(self, make_calls):
        calls = make_calls([{"Dialled_Number": "9000000001"}, {"Subject": "no number"}])
        assert build_call_phone_set(calls) == frozenset({"9000000001"})

    def test_index_is_read_only(self, make_leads):
        index = IdentityIndex.build(make_leads([{"id": "L1", "Phone": "9000000001"}]), [])
        with pytest.raises(TypeError):
            index.lead_by_id["L2"] = None
        with pytest.raises(AttributeError):
            index.call_phones = frozenset()
