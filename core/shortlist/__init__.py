"""
Shortlist lifecycle: state machine, follow-up detection and pricing.

Public API:
- ShortlistStateMachine: every lifecycle transition
- TransitionResult: outcome of transitions that touch money
- FollowUpDetector / RequestProfile / FollowUpDecision
- PricingCalculator / PricingSuggestion
"""

from core.shortlist.follow_up import FollowUpDecision, FollowUpDetector, RequestProfile
from core.shortlist.pricing import PricingCalculator, PricingSuggestion
from core.shortlist.results import TransitionResult
from core.shortlist.state_machine import ShortlistStateMachine

__all__ = [
    'ShortlistStateMachine',
    'TransitionResult',
    'FollowUpDetector',
    'FollowUpDecision',
    'RequestProfile',
    'PricingCalculator',
    'PricingSuggestion',
]
