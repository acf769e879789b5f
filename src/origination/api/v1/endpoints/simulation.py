"""
Public loan simulation endpoint
"""
from fastapi import APIRouter, Depends

from origination.core.dependencies import get_pricing_engine
from origination.schemas.pricing import SimulationRequest, SimulationResponse
from origination.services.pricing import PricingEngine, first_due_date

router = APIRouter()


@router.post("/simulate", response_model=SimulationResponse)
async def simulate(request: SimulationRequest, pricing: PricingEngine = Depends(get_pricing_engine)):
    """
    Price a loan and return its amortization schedule.
    Requests outside the product bounds are clamped and flagged as adjusted.
    """
    simulation = pricing.simulate(request.amount, request.installments, request.monthly_income)
    schedule = pricing.generate_schedule(
        simulation.amount, simulation.interest_rate, simulation.installments, first_due=first_due_date()
    )
    affordability = None
    if request.monthly_income:
        affordability = pricing.check_affordability(simulation.monthly_payment, request.monthly_income)
    return SimulationResponse(simulation=simulation, schedule=schedule, affordability=affordability)
