"""Balancing diagnostics."""

from .economy_simulator import ClaimSummary, DropSimulator, SimulationResult, simulate_claims

__all__ = ["ClaimSummary", "DropSimulator", "SimulationResult", "simulate_claims"]
