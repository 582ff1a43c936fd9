"""
Tests for Relief Alignment
==========================
"""

from datetime import date
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from dispute_backend.errors import PlaceholderError
from dispute_backend.relief import (
    ReliefType,
    extract_relief_from_document,
    generate_relief_section,
    validate_relief,
)
from dispute_backend.schemas import LegalForum


class TestValidateRelief:
    """Tests for validate_relief"""

    def test_costs_forbidden_in_small_claims(self):
        result = validate_relief(
            [ReliefType.PRINCIPAL_SUM, ReliefType.COSTS],
            LegalForum.COUNTY_COURT_SMALL_CLAIMS,
            148.5,
        )
        assert not result.valid
        assert result.forbidden_relief == [ReliefType.COSTS]
        assert "COSTS not recoverable in small claims (except fixed court fee)" in result.warnings

    def test_costs_allowed_on_fast_track(self):
        result = validate_relief([ReliefType.PRINCIPAL_SUM, ReliefType.COSTS], LegalForum.COUNTY_COURT_FAST_TRACK, 12000)
        assert result.valid
        assert result.warnings == []

    def test_injunction_disproportionate(self):
        result = validate_relief([ReliefType.INJUNCTION], LegalForum.COUNTY_COURT_FAST_TRACK, 500)
        assert result.valid
        assert result.needs_confirmation == [ReliefType.INJUNCTION]
        assert result.warnings == ["Injunction disproportionate for £500.00 claim"]

    def test_further_relief_in_small_claims(self):
        result = validate_relief([ReliefType.FURTHER_RELIEF], LegalForum.COUNTY_COURT_SMALL_CLAIMS)
        assert result.needs_confirmation == [ReliefType.FURTHER_RELIEF]
        assert result.warnings == ['"Further or other relief" should be specific in small claims']

    def test_tribunal_forbids_interest(self):
        result = validate_relief([ReliefType.COMPENSATION, ReliefType.STATUTORY_INTEREST], LegalForum.EMPLOYMENT_TRIBUNAL)
        assert result.forbidden_relief == [ReliefType.STATUTORY_INTEREST]


class TestExtractRelief:
    """Tests for extract_relief_from_document"""

    def test_small_claims_relief(self):
        content = "AND THE CLAIMANT CLAIMS:\n(1) Payment of the sum of £148.50\n(2) The court fee"
        assert extract_relief_from_document(content) == [ReliefType.PRINCIPAL_SUM]

    def test_interest_needs_rate(self):
        assert ReliefType.STATUTORY_INTEREST not in extract_relief_from_document("Interest as the court allows")
        assert ReliefType.STATUTORY_INTEREST in extract_relief_from_document("Interest at 8% per annum")

    def test_fast_track_relief(self):
        relief = extract_relief_from_document("(3) Costs\n(4) Further or other relief")
        assert relief == [ReliefType.COSTS, ReliefType.FURTHER_RELIEF]


class TestReliefSection:
    """Tests for generate_relief_section"""

    def test_small_claims_without_interest(self):
        text = generate_relief_section(LegalForum.COUNTY_COURT_SMALL_CLAIMS, 148.5)
        assert text.startswith("AND THE CLAIMANT CLAIMS:")
        assert "(1) Payment of the sum of £148.50" in text
        assert "(2) The court fee" in text
        assert "Interest" not in text

    def test_small_claims_interest_needs_confirmation(self):
        unconfirmed = generate_relief_section(
            LegalForum.COUNTY_COURT_SMALL_CLAIMS, 148.5, include_interest=True, interest_from=date(2025, 3, 3)
        )
        assert "Interest" not in unconfirmed

        confirmed = generate_relief_section(
            LegalForum.COUNTY_COURT_SMALL_CLAIMS,
            148.5,
            include_interest=True,
            user_confirmed=[ReliefType.STATUTORY_INTEREST],
            interest_from=date(2025, 3, 3),
        )
        assert "(2) Interest pursuant to section 69 of the County Courts Act 1984 at the rate of 8% per annum from 03/03/2025" in confirmed
        assert "(3) The court fee" in confirmed

    def test_interest_without_date_raises(self):
        with pytest.raises(PlaceholderError) as exc:
            generate_relief_section(
                LegalForum.COUNTY_COURT_SMALL_CLAIMS,
                148.5,
                include_interest=True,
                user_confirmed=[ReliefType.STATUTORY_INTEREST],
            )
        assert exc.value.placeholders == ["interest start date"]

    def test_fast_track(self):
        text = generate_relief_section(LegalForum.COUNTY_COURT_FAST_TRACK, 12000)
        assert "(2) Costs" in text
        assert "(3) Further or other relief" in text

    def test_tribunal_reinstatement(self):
        text = generate_relief_section(
            LegalForum.EMPLOYMENT_TRIBUNAL, 0, user_confirmed=[ReliefType.REINSTATEMENT]
        )
        assert "(1) An order for reinstatement, or alternatively compensation" in text
        assert "(2) Such further relief as the Tribunal considers appropriate" in text

    def test_benefits_appeal(self):
        text = generate_relief_section(LegalForum.SOCIAL_SECURITY_TRIBUNAL, 0)
        assert text.startswith("THE APPELLANT ASKS:")
        assert "(1) That the appeal be allowed" in text

    def test_generated_small_claims_relief_passes_validation(self):
        text = generate_relief_section(LegalForum.COUNTY_COURT_SMALL_CLAIMS, 148.5)
        assert validate_relief(extract_relief_from_document(text), LegalForum.COUNTY_COURT_SMALL_CLAIMS, 148.5).valid
