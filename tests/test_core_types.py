"""
Core primitives and domain types.

Duration parsing, canonical JSON, enum parsing and the dispute transition
table.
"""

import pytest

from tribunal.core import canonical_json_bytes, digest_of, parse_duration_seconds, to_decimal
from tribunal.currencies import Currency
from tribunal.errors import InvalidCategory, InvalidEvidenceType, InvalidResolution
from tribunal.types import (
    VALID_TRANSITIONS,
    AppealStake,
    Dispute,
    DisputeCategory,
    DisputeStatus,
    EvidenceType,
    OracleRequest,
    Resolution,
)


class TestDurations:

    @pytest.mark.parametrize("raw,expected", [
        (30, 30),
        ("45", 45),
        ("30s", 30),
        ("15m", 900),
        ("2h", 7200),
        ("3d", 259200),
        ("3D", 259200),
        ("P2D", 172800),
        ("PT1H30M", 5400),
        ("PT45S", 45),
    ])
    def test_accepted_formats(self, raw, expected):
        assert parse_duration_seconds(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "soon", "PT", "3w", "-5"])
    def test_rejected_formats(self, raw):
        with pytest.raises(ValueError):
            parse_duration_seconds(raw)


class TestCanonicalJson:

    def test_sorted_and_compact(self):
        assert canonical_json_bytes({"b": 1, "a": [2, 3]}) == b'{"a":[2,3],"b":1}'

    def test_floats_rejected(self):
        with pytest.raises(ValueError, match="Float not allowed"):
            canonical_json_bytes({"amount": 1.5})

    def test_nested_float_path_reported(self):
        with pytest.raises(ValueError, match=r"\.outer\[1\]"):
            canonical_json_bytes({"outer": [1, 0.1]})

    def test_digest_ignores_key_order(self):
        assert digest_of({"x": 1, "y": 2}) == digest_of({"y": 2, "x": 1})
        assert len(digest_of({})) == 64

    def test_to_decimal_does_not_go_through_binary_float(self):
        assert str(to_decimal(0.1)) == "0.1"
        assert str(to_decimal("1.000000000000000001")) == "1.000000000000000001"


class TestEnumParsing:

    def test_resolution_aliases(self):
        assert Resolution.parse("FavorClaimant") is Resolution.FAVOR_CLAIMANT
        assert Resolution.parse("favor_respondent") is Resolution.FAVOR_RESPONDENT
        assert Resolution.parse("SPLIT") is Resolution.SPLIT
        assert Resolution.parse(4) is Resolution.DISMISSED

    def test_decided_rejects_none(self):
        with pytest.raises(InvalidResolution):
            Resolution.decided("none")
        with pytest.raises(InvalidResolution):
            Resolution.decided(0)
        with pytest.raises(InvalidResolution):
            Resolution.decided("maybe")

    def test_bool_is_not_an_index(self):
        with pytest.raises(InvalidResolution):
            Resolution.decided(True)

    def test_category_and_evidence_type(self):
        assert DisputeCategory.checked("ContractBreach") is DisputeCategory.CONTRACT_BREACH
        assert DisputeCategory.checked(5) is DisputeCategory.OTHER
        assert EvidenceType.checked("communication") is EvidenceType.COMMUNICATION
        with pytest.raises(InvalidCategory):
            DisputeCategory.checked(6)
        with pytest.raises(InvalidEvidenceType):
            EvidenceType.checked("hearsay")

    def test_index_matches_declaration_order(self):
        assert [s.index for s in DisputeStatus] == list(range(7))


class TestTransitions:

    def test_terminal_states_have_no_exits(self):
        for status in DisputeStatus:
            if status.is_terminal():
                assert VALID_TRANSITIONS[status] == set()
            else:
                assert VALID_TRANSITIONS[status]

    def test_cancel_only_from_created(self):
        sources = {s for s, targets in VALID_TRANSITIONS.items() if DisputeStatus.CANCELLED in targets}
        assert sources == {DisputeStatus.CREATED}

    def test_evidence_stage(self):
        assert DisputeStatus.CREATED.accepts_evidence()
        assert DisputeStatus.EVIDENCE_SUBMISSION.accepts_evidence()
        assert not DisputeStatus.AWAITING_VERDICT.accepts_evidence()

    def test_request_expiry_boundary(self):
        request = OracleRequest("0x1", 1, created_at=100, expires_at=200)
        assert not request.is_expired_at(200)
        assert request.is_expired_at(201)


class TestRecords:

    def dispute(self):
        return Dispute(
            dispute_id=3,
            claimant="0xa1",
            respondent="0xb0",
            category=DisputeCategory.OTHER,
            description_ref="ipfs://d",
            stake_asset="ETH",
            stake_amount=15 * 10 ** 17,
            fee_bps=250,
            created_at=0,
            evidence_deadline=10,
        )

    def test_dispute_amounts_in_base_units(self):
        data = self.dispute().to_dict()
        assert data["stake_amount"] == 15 * 10 ** 17
        assert data["status"] == "created"
        assert "display" not in data

    def test_dispute_amounts_as_decimal_strings(self):
        eth = Currency.from_human("ETH", 18, "0.001", "1000", 250, native=True)
        dispute = self.dispute()
        assert dispute.to_dict(eth)["display"] == {
            "stake_amount": "1.5",
            "total_pool": "3",
            "appeal_stake": None,
        }
        dispute.appeal = AppealStake(3, "0xb0", 3 * 10 ** 17, 5)
        assert dispute.to_dict(eth)["display"]["appeal_stake"] == "0.3"
