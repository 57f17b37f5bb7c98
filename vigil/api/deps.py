"""
API Dependencies

The agent (and through it the store) is created once at startup and
kept on app.state; routers reach it through these dependencies.
"""

from fastapi import Request

from vigil.scheduler.agent import ResearchAutonomyAgent
from vigil.scheduler.seeds import DEFAULT_INTERVAL_MINUTES
from vigil.scheduler.store import ResearchJobStore


def get_agent(request: Request) -> ResearchAutonomyAgent:
    """Get the application's agent."""
    return request.app.state.agent


def get_store(request: Request) -> ResearchJobStore:
    """Get the job store behind the agent."""
    return request.app.state.agent.store


def get_seed_interval(request: Request) -> float:
    """Default interval for seeded jobs, in minutes."""
    config = getattr(request.app.state, "config", None)
    if config is None:
        return DEFAULT_INTERVAL_MINUTES
    return config.autonomy.seed_interval_minutes
