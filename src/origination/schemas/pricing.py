"""
Pricing schemas: loan simulations, amortization schedules, affordability
"""
from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field


class LoanSimulation(BaseModel):
    """Terms computed for an amount and a number of installments"""
    amount: float
    installments: int
    interest_rate: float = Field(..., description="Monthly rate, %")
    monthly_payment: float
    total_amount: float
    total_interest: float
    iof: float = Field(..., description="Financial operations tax")
    cet: float = Field(..., description="Total effective cost, % per year")
    adjusted: bool = False
    adjustments: List[str] = []


class InstallmentRow(BaseModel):
    number: int
    payment: float
    principal: float
    interest: float
    balance: float
    due_date: Optional[date] = None


class Affordability(BaseModel):
    affordable: bool
    commitment_ratio: float = Field(..., description="Payment as % of income")
    max_payment: float


class SimulationRequest(BaseModel):
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    installments: int = Field(..., gt=0)
    monthly_income: Optional[float] = Field(None, gt=0, allow_inf_nan=False)


class SimulationResponse(BaseModel):
    simulation: LoanSimulation
    schedule: List[InstallmentRow]
    affordability: Optional[Affordability] = None
