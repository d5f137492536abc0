"""Review queue routing: queue reasons, priority tiers, deterministic sampling."""

from .queue import Priority, QueueDecision, QueueReason, SamplingConfig, route_for_review, should_sample

__all__ = ["Priority", "QueueDecision", "QueueReason", "SamplingConfig", "route_for_review", "should_sample"]
