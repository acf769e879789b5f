"""
Pricing engine: rate selection, installment payment, tax and total effective cost
"""
from datetime import date
from typing import List, Optional

from origination.core.config import LoanConfig, settings
from origination.schemas.pricing import Affordability, InstallmentRow, LoanSimulation
from origination.utils.helpers import add_months, round_money

# Financial operations tax (IOF): flat part plus a daily part capped at one year
IOF_FLAT_RATE = 0.0038
IOF_DAILY_RATE = 0.000082
IOF_MAX_DAYS = 365

# Share of monthly income a loan payment may take
MAX_COMMITMENT = 0.35

DUE_DAY = 10


def calculate_payment(principal: float, monthly_rate: float, periods: int) -> float:
    """
    Fixed installment (PMT) for a fully amortizing loan.

    Args:
        principal: Amount financed
        monthly_rate: Monthly rate as a fraction (0.0199 for 1.99%)
        periods: Number of installments
    """
    if monthly_rate == 0:
        return principal / periods
    growth = (1 + monthly_rate) ** periods
    return principal * monthly_rate * growth / (growth - 1)


def first_due_date(start: Optional[date] = None) -> date:
    """Installments fall on the 10th; the first one is in the month after `start`"""
    return add_months(start or date.today(), 1, DUE_DAY)


class PricingEngine:
    """
    Computes loan terms from the product bounds in config.yaml (loan section).
    Pure: no I/O, no state.
    """

    def __init__(self, config: Optional[LoanConfig] = None):
        self.config = config or settings.loan

    def clamp(self, amount: float, installments: int):
        """Bring a request inside the product bounds; returns (amount, installments, adjustments)"""
        cfg = self.config
        adjustments = []
        clamped_amount = max(cfg.min_amount, min(cfg.max_amount, amount))
        if clamped_amount != amount:
            adjustments.append(f"amount adjusted from {amount:.2f} to {clamped_amount:.2f}")
        clamped_installments = max(cfg.min_installments, min(cfg.max_installments, int(installments)))
        if clamped_installments != installments:
            adjustments.append(f"installments adjusted from {installments} to {clamped_installments}")
        return clamped_amount, clamped_installments, adjustments

    def monthly_rate(self, amount: float, installments: int, monthly_income: Optional[float] = None) -> float:
        """Risk-adjusted monthly rate as a fraction"""
        rate = self.config.base_rate / 100

        if monthly_income:
            commitment = amount / (monthly_income * installments)
            if commitment > 0.5:
                rate += 0.005
            if commitment < 0.2:
                rate -= 0.003
            if monthly_income > 10000:
                rate -= 0.002

        if installments > 24:
            rate += 0.003
        if installments > 36:
            rate += 0.002

        return max(rate, self.config.min_rate / 100)

    def simulate(
        self,
        amount: float,
        installments: int,
        monthly_income: Optional[float] = None,
    ) -> LoanSimulation:
        """
        Price a loan. Out-of-range requests are clamped to the product bounds
        and the result says so.
        """
        amount, installments, adjustments = self.clamp(amount, installments)
        rate = self.monthly_rate(amount, installments, monthly_income)
        return self._build(amount, installments, rate, adjustments)

    def price_at_rate(self, amount: float, installments: int, monthly_rate_pct: float) -> LoanSimulation:
        """Price with a rate that is already fixed (e.g. frozen on an application)"""
        return self._build(amount, installments, monthly_rate_pct / 100, [])

    def _build(self, amount: float, installments: int, rate: float, adjustments: List[str]) -> LoanSimulation:
        payment = calculate_payment(amount, rate, installments)
        total = payment * installments

        average_days = installments * 30 / 2
        iof = amount * IOF_FLAT_RATE + amount * IOF_DAILY_RATE * min(average_days, IOF_MAX_DAYS)

        monthly_effective = rate + (iof / amount) / installments
        cet = ((1 + monthly_effective) ** 12 - 1) * 100

        return LoanSimulation(
            amount=round_money(amount),
            installments=installments,
            interest_rate=round(rate * 100, 2),
            monthly_payment=round_money(payment),
            total_amount=round_money(total),
            total_interest=round_money(total - amount),
            iof=round_money(iof),
            cet=round_money(cet),
            adjusted=bool(adjustments),
            adjustments=adjustments,
        )

    def generate_schedule(
        self,
        amount: float,
        monthly_rate_pct: float,
        installments: int,
        first_due: Optional[date] = None,
    ) -> List[InstallmentRow]:
        """
        Amortization table (French system). The remaining balance never goes below zero.
        Due dates are filled in monthly from `first_due` when given.
        """
        rate = monthly_rate_pct / 100
        payment = calculate_payment(amount, rate, installments)
        balance = amount
        rows = []

        for number in range(1, installments + 1):
            interest = balance * rate
            principal = payment - interest
            balance -= principal
            due = add_months(first_due, number - 1, first_due.day) if first_due else None
            rows.append(
                InstallmentRow(
                    number=number,
                    payment=round_money(payment),
                    principal=round_money(principal),
                    interest=round_money(interest),
                    balance=max(0.0, round_money(balance)),
                    due_date=due,
                )
            )

        return rows

    @staticmethod
    def check_affordability(monthly_payment: float, monthly_income: float) -> Affordability:
        max_payment = monthly_income * MAX_COMMITMENT
        ratio = monthly_payment / monthly_income
        return Affordability(
            affordable=ratio <= MAX_COMMITMENT,
            commitment_ratio=round(ratio * 100, 2),
            max_payment=round_money(max_payment),
        )
