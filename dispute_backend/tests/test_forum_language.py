"""
Tests for Forum Language Guard
==============================
"""

from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from dispute_backend.forum_language import (
    contains_phrase,
    generate_forum_language_instructions,
    get_forum_from_routing,
    validate_forum_language,
)
from dispute_backend.schemas import LegalForum


SMALL_CLAIMS_LETTER = (
    "The defendant agreed to pay £13.50 per hour under an oral agreement. "
    "The sum of £148.50 remains unpaid."
)

TRIBUNAL_CLAIM = (
    "The respondent failed to pay my wages during my employment. "
    "I completed ACAS early conciliation."
)


class TestValidateForumLanguage:
    """Tests for validate_forum_language"""

    def test_clean_small_claims_letter(self):
        result = validate_forum_language(SMALL_CLAIMS_LETTER, LegalForum.COUNTY_COURT_SMALL_CLAIMS)
        assert result.valid
        assert result.forbidden_phrases == []
        assert result.missing_required == []
        assert result.warnings == []

    def test_tribunal_vocabulary_in_small_claims(self):
        content = SMALL_CLAIMS_LETTER + " This amounts to harassment by the respondent."
        result = validate_forum_language(content, LegalForum.COUNTY_COURT_SMALL_CLAIMS)
        assert not result.valid
        assert result.forbidden_phrases == ["harassment", "respondent"]
        assert 'Using "respondent" in court context - should use "defendant"' in result.warnings

    def test_required_alternatives(self):
        result = validate_forum_language("The sum of £80 is owed.", LegalForum.COUNTY_COURT_SMALL_CLAIMS)
        assert result.missing_required == ["contract or agreement"]
        assert not result.valid

    def test_argumentative_phrase_warns(self):
        content = SMALL_CLAIMS_LETTER + " The defendant unfairly refused to pay."
        result = validate_forum_language(content, LegalForum.COUNTY_COURT_SMALL_CLAIMS)
        assert result.valid
        assert result.warnings == [
            'Phrase "unfairly refused" invites unnecessary argument in simple debt claim'
        ]

    def test_clean_tribunal_claim(self):
        assert validate_forum_language(TRIBUNAL_CLAIM, LegalForum.EMPLOYMENT_TRIBUNAL).valid

    def test_court_vocabulary_in_tribunal(self):
        content = TRIBUNAL_CLAIM + " This is a breach of contract by the defendant under the CPR."
        result = validate_forum_language(content, LegalForum.EMPLOYMENT_TRIBUNAL)
        assert result.forbidden_phrases == ["breach of contract", "defendant", "CPR"]
        assert 'Using "defendant" in tribunal context - should use "respondent"' in result.warnings

    def test_whole_words_only(self):
        # "sums" is not "sum", "respondents" is not "respondent"
        assert not contains_phrase("Various sums", "sum")
        assert contains_phrase("THE SUM", "sum")
        assert not contains_phrase("respondents", "respondent")

    def test_empty_content(self):
        result = validate_forum_language("", LegalForum.EMPLOYMENT_TRIBUNAL)
        assert result.missing_required == ["respondent", "employment"]


class TestForumFromRouting:
    """Tests for get_forum_from_routing"""

    @pytest.mark.parametrize("domain,forum_id,expected", [
        ("debt", "county_court_small_claims", LegalForum.COUNTY_COURT_SMALL_CLAIMS),
        ("debt", "county_court_fast_track", LegalForum.COUNTY_COURT_FAST_TRACK),
        ("employment", "employment_tribunal", LegalForum.EMPLOYMENT_TRIBUNAL),
        ("social_security", "first_tier_tribunal_sscs", LegalForum.SOCIAL_SECURITY_TRIBUNAL),
        ("immigration", "home_office_admin_review", LegalForum.IMMIGRATION_TRIBUNAL),
        ("traffic_offence", "magistrates_court", None),
        ("parking", "popla_parking_appeal", None),
        ("employment", "unknown", LegalForum.EMPLOYMENT_TRIBUNAL),
        ("parking", "unknown", None),
        ("other", "unknown", LegalForum.COUNTY_COURT_SMALL_CLAIMS),
    ])
    def test_mapping(self, domain, forum_id, expected):
        assert get_forum_from_routing(domain, forum_id) == expected


def test_instructions_list_forbidden_and_required():
    text = generate_forum_language_instructions(LegalForum.COUNTY_COURT_SMALL_CLAIMS)
    assert text.startswith("CRITICAL: FORUM-SPECIFIC LANGUAGE RULES")
    assert '- "harassment"' in text
    assert "! 'contract' or 'agreement'" in text
    assert "- Use 'defendant' not 'respondent'" in text
    assert text.endswith("UNDERMINE CREDIBILITY IN COUNTY COURT SMALL CLAIMS.")
