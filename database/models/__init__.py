from .base import Base
from .directory import Company, Candidate, CandidateSkill
from .shortlist import ShortlistRequest, ShortlistCandidate
from .payment import Payment
from .event import ShortlistEvent
from .notification import ShortlistEmail

__all__ = [
    'Base',
    'Company',
    'Candidate',
    'CandidateSkill',
    'ShortlistRequest',
    'ShortlistCandidate',
    'Payment',
    'ShortlistEvent',
    'ShortlistEmail',
]
