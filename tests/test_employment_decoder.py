"""Tests for employment string normalization."""

from __future__ import annotations

import pytest

from loanmatch.decoders.employment import EMPLOYMENT_SYNONYMS, normalize_employment
from loanmatch.errors import UnknownEmploymentStatusError
from loanmatch.models.enums import EmploymentStatus


class TestNormalizeEmployment:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("employed", EmploymentStatus.EMPLOYED),
            ("Salaried", EmploymentStatus.EMPLOYED),
            ("Full-Time", EmploymentStatus.EMPLOYED),
            ("part time", EmploymentStatus.EMPLOYED),
            ("self-employed", EmploymentStatus.SELF_EMPLOYED),
            ("Business Owner", EmploymentStatus.SELF_EMPLOYED),
            ("freelancer", EmploymentStatus.SELF_EMPLOYED),
            ("JOBLESS", EmploymentStatus.UNEMPLOYED),
            ("pensioner", EmploymentStatus.RETIRED),
            ("  studying  ", EmploymentStatus.STUDENT),
        ],
    )
    def test_synonyms(self, raw, expected):
        assert normalize_employment(raw) is expected

    def test_enum_passes_through(self):
        assert normalize_employment(EmploymentStatus.RETIRED) is EmploymentStatus.RETIRED

    def test_unknown_is_rejected(self):
        with pytest.raises(UnknownEmploymentStatusError) as exc_info:
            normalize_employment("astronaut")
        assert exc_info.value.raw == "astronaut"
        assert isinstance(exc_info.value, ValueError)

    def test_every_status_has_its_own_value_as_synonym(self):
        for status in EmploymentStatus:
            assert EMPLOYMENT_SYNONYMS[status.value] is status

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            EMPLOYMENT_SYNONYMS["astronaut"] = EmploymentStatus.EMPLOYED  # type: ignore[index]
