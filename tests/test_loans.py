"""
Tests for Loan Service
"""
import pytest
from decimal import Decimal

from lendcircle.core.exceptions import LoanImmutable, LoanNotFound, NotLoanOwner, ValidationError
from lendcircle.modules.funding.schemas import InvestmentCreate
from lendcircle.modules.funding.services import AdmissionService
from lendcircle.modules.loans.models import LoanStatus
from lendcircle.modules.loans.schemas import LoanFilters, LoanRequestCreate, LoanRequestUpdate, LoanSortEnum
from lendcircle.modules.loans.services import LoanService


def loan_request(**overrides) -> LoanRequestCreate:
    data = {
        "title": "Kitchen renovation",
        "description": "New cabinets",
        "amount_requested": Decimal("5000.00"),
        "interest_rate": Decimal("7.50"),
        "repayment_months": 24,
        "currency": "USD",
    }
    data.update(overrides)
    return LoanRequestCreate(**data)


class TestLoanTermValidation:
    """Tests for the loan term floors"""

    @pytest.mark.unit
    def test_minimum_terms_accepted(self):
        LoanService.validate_terms(Decimal("100.00"), Decimal("4.00"), 1, "USD")

    @pytest.mark.unit
    def test_amount_below_minimum(self):
        with pytest.raises(ValidationError, match="Minimum loan amount is 100.00"):
            LoanService.validate_terms(Decimal("99.99"), Decimal("6.00"), 12, "USD")

    @pytest.mark.unit
    def test_rate_below_floor(self):
        with pytest.raises(ValidationError, match="Minimum interest rate is 4.00%"):
            LoanService.validate_terms(Decimal("1000.00"), Decimal("3.99"), 12, "USD")

    @pytest.mark.unit
    def test_unsupported_currency(self):
        with pytest.raises(ValidationError, match="Unsupported currency"):
            LoanService.validate_terms(Decimal("1000.00"), Decimal("6.00"), 12, "XYZ")

    @pytest.mark.unit
    def test_lowercase_currency_accepted(self):
        LoanService.validate_terms(Decimal("1000.00"), Decimal("6.00"), 12, "eur")


class TestLoanCreation:
    """Tests for publishing loan requests"""

    @pytest.mark.integration
    async def test_create_loan_request(self, db_session):
        service = LoanService(db_session)

        loan = await service.create_loan_request(1, loan_request(currency="eur"))

        assert loan.id is not None
        assert loan.borrower_id == 1
        assert loan.status == LoanStatus.OPEN
        assert loan.amount_funded == Decimal("0.00")
        assert loan.currency == "EUR"
        assert loan.version == 1

    @pytest.mark.integration
    async def test_create_sanitizes_title(self, db_session):
        service = LoanService(db_session)

        loan = await service.create_loan_request(1, loan_request(title="<b>Car</b>"))

        assert loan.title == "bCar/b"

    @pytest.mark.integration
    async def test_create_below_minimum_writes_nothing(self, db_session):
        service = LoanService(db_session)

        with pytest.raises(ValidationError):
            await service.create_loan_request(1, loan_request(amount_requested=Decimal("50.00")))

        assert await service.list_loans() == []

    @pytest.mark.integration
    async def test_get_missing_loan(self, db_session):
        with pytest.raises(LoanNotFound):
            await LoanService(db_session).get_loan(999)


class TestLoanEditing:
    """Loans can only be edited or deleted before anyone invests"""

    @pytest.mark.integration
    async def test_update_open_loan(self, db_session, make_loan):
        loan = await make_loan(amount_requested="2000.00")
        service = LoanService(db_session)

        updated = await service.update_loan(
            loan.id, 1, LoanRequestUpdate(amount_requested=Decimal("3000.00"), title="Bigger")
        )

        assert updated.amount_requested == Decimal("3000.00")
        assert updated.title == "Bigger"
        assert updated.version == 2

    @pytest.mark.integration
    async def test_update_revalidates_terms(self, db_session, make_loan):
        loan = await make_loan()

        with pytest.raises(ValidationError):
            await LoanService(db_session).update_loan(loan.id, 1, LoanRequestUpdate(interest_rate=Decimal("2.00")))

    @pytest.mark.integration
    async def test_update_by_other_user(self, db_session, make_loan):
        loan = await make_loan()

        with pytest.raises(NotLoanOwner):
            await LoanService(db_session).update_loan(loan.id, 2, LoanRequestUpdate(title="Mine now"))

    @pytest.mark.integration
    async def test_update_after_investment(self, db_session, make_loan):
        loan = await make_loan(amount_requested="5000.00")
        await AdmissionService(db_session).invest_in_loan(loan.id, 2, InvestmentCreate(amount=Decimal("500.00")))

        with pytest.raises(LoanImmutable):
            await LoanService(db_session).update_loan(loan.id, 1, LoanRequestUpdate(title="Changed"))

    @pytest.mark.integration
    async def test_delete_open_loan(self, db_session, make_loan):
        loan = await make_loan()
        service = LoanService(db_session)

        await service.delete_loan(loan.id, 1)

        with pytest.raises(LoanNotFound):
            await service.get_loan(loan.id)

    @pytest.mark.integration
    async def test_delete_after_investment(self, db_session, make_loan):
        loan = await make_loan(amount_requested="5000.00")
        await AdmissionService(db_session).invest_in_loan(loan.id, 2, InvestmentCreate(amount=Decimal("500.00")))

        with pytest.raises(LoanImmutable):
            await LoanService(db_session).delete_loan(loan.id, 1)


class TestLoanBrowsing:
    """Tests for filters and sorting"""

    @pytest.mark.integration
    async def test_funded_amount_comes_from_investments(self, db_session, make_loan):
        loan = await make_loan(amount_requested="5000.00")
        await AdmissionService(db_session).invest_in_loan(loan.id, 2, InvestmentCreate(amount=Decimal("750.00")))

        [response] = await LoanService(db_session).list_loans()

        assert response.amount_funded == Decimal("750.00")
        assert response.remaining_capacity == Decimal("4250.00")

    @pytest.mark.integration
    async def test_sort_by_amount(self, db_session, make_loan):
        await make_loan(amount_requested="500.00")
        await make_loan(amount_requested="9000.00")
        await make_loan(amount_requested="2500.00")
        service = LoanService(db_session)

        high = await service.list_loans(LoanFilters(sort=LoanSortEnum.AMOUNT_HIGH))
        low = await service.list_loans(LoanFilters(sort=LoanSortEnum.AMOUNT_LOW))

        assert [l.amount_requested for l in high] == [Decimal("9000.00"), Decimal("2500.00"), Decimal("500.00")]
        assert [l.amount_requested for l in low] == [Decimal("500.00"), Decimal("2500.00"), Decimal("9000.00")]

    @pytest.mark.integration
    async def test_sort_by_funded(self, db_session, make_loan):
        untouched = await make_loan(amount_requested="5000.00")
        partly = await make_loan(amount_requested="5000.00")
        await AdmissionService(db_session).invest_in_loan(partly.id, 2, InvestmentCreate(amount=Decimal("1000.00")))

        loans = await LoanService(db_session).list_loans(LoanFilters(sort=LoanSortEnum.FUNDED_HIGH))

        assert [l.id for l in loans] == [partly.id, untouched.id]

    @pytest.mark.integration
    async def test_filters(self, db_session, make_loan):
        await make_loan(amount_requested="500.00", interest_rate="5.00", currency="USD")
        match = await make_loan(amount_requested="3000.00", interest_rate="9.00", currency="EUR")
        await make_loan(amount_requested="3000.00", interest_rate="9.00", currency="USD", repayment_months=60)

        loans = await LoanService(db_session).list_loans(LoanFilters(
            min_amount=Decimal("1000.00"),
            min_rate=Decimal("8.00"),
            max_months=36
        ))
        euro = await LoanService(db_session).list_loans(LoanFilters(currency="eur"))

        assert [l.id for l in loans] == [match.id]
        assert [l.id for l in euro] == [match.id]

    @pytest.mark.integration
    async def test_filter_by_status(self, db_session, make_loan):
        funded = await make_loan(amount_requested="500.00")
        await make_loan(amount_requested="500.00")
        await AdmissionService(db_session).invest_in_loan(funded.id, 2, InvestmentCreate(amount=Decimal("500.00")))

        loans = await LoanService(db_session).list_loans(LoanFilters(status="funded"))

        assert [l.id for l in loans] == [funded.id]

    @pytest.mark.integration
    async def test_borrower_loans(self, db_session, make_loan):
        mine = await make_loan(borrower_id=7)
        await make_loan(borrower_id=8)

        loans = await LoanService(db_session).get_borrower_loans(7)

        assert [l.id for l in loans] == [mine.id]
