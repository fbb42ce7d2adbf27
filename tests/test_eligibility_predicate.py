"""Tests for the Stage 1 eligibility predicate."""

from __future__ import annotations

from decimal import Decimal

from loanmatch.eligibility.predicate import check_eligibility
from loanmatch.models.enums import EmploymentStatus
from tests.factories import make_applicant, make_product


class TestReferencePair:
    def test_all_criteria_pass(self):
        flags = check_eligibility(make_applicant(), make_product())
        assert flags.passed is True
        assert flags.failed_criteria() == []


class TestIncome:
    def test_below_minimum_fails(self):
        flags = check_eligibility(make_applicant(monthly_income=Decimal("24999.99")), make_product())
        assert flags.income_eligible is False
        assert flags.passed is False

    def test_exact_minimum_passes(self):
        flags = check_eligibility(make_applicant(monthly_income=Decimal("25000")), make_product())
        assert flags.income_eligible is True

    def test_no_upper_bound(self):
        flags = check_eligibility(make_applicant(monthly_income=Decimal("10000000")), make_product())
        assert flags.income_eligible is True


class TestCreditScore:
    def test_below_minimum_fails(self):
        flags = check_eligibility(make_applicant(credit_score=699), make_product())
        assert flags.credit_score_eligible is False

    def test_above_maximum_fails(self):
        flags = check_eligibility(make_applicant(credit_score=800), make_product(max_credit_score=750))
        assert flags.credit_score_eligible is False

    def test_unset_maximum_is_unbounded(self):
        flags = check_eligibility(make_applicant(credit_score=900), make_product(max_credit_score=None))
        assert flags.credit_score_eligible is True


class TestAge:
    def test_bounds_are_inclusive(self):
        product = make_product(min_age=21, max_age=60)
        assert check_eligibility(make_applicant(age=21), product).age_eligible is True
        assert check_eligibility(make_applicant(age=60), product).age_eligible is True

    def test_outside_range_fails(self):
        product = make_product(min_age=21, max_age=60)
        assert check_eligibility(make_applicant(age=20), product).age_eligible is False
        assert check_eligibility(make_applicant(age=61), product).age_eligible is False


class TestEmployment:
    def test_status_not_accepted_fails(self):
        flags = check_eligibility(make_applicant(employment_status=EmploymentStatus.RETIRED), make_product())
        assert flags.employment_eligible is False

    def test_empty_accepted_set_means_unrestricted(self):
        flags = check_eligibility(
            make_applicant(employment_status=EmploymentStatus.STUDENT),
            make_product(accepted_employment=[]),
        )
        assert flags.employment_eligible is True


class TestNoShortCircuit:
    def test_every_criterion_is_reported(self):
        """Failing income does not stop the remaining criteria from being evaluated."""
        applicant = make_applicant(
            monthly_income=Decimal("100"),
            credit_score=650,
            age=70,
            employment_status=EmploymentStatus.UNEMPLOYED,
        )
        flags = check_eligibility(applicant, make_product())
        assert flags.failed_criteria() == ["income", "credit_score", "age", "employment"]

    def test_single_failure_is_isolated(self):
        flags = check_eligibility(make_applicant(age=65), make_product())
        assert flags.income_eligible is True
        assert flags.credit_score_eligible is True
        assert flags.employment_eligible is True
        assert flags.failed_criteria() == ["age"]
