from database.repositories.base import BaseRepository
from database.repositories.shortlist import ShortlistRequestRepository, ShortlistCandidateRepository
from database.repositories.payment import PaymentRepository
from database.repositories.event import EventRepository
from database.repositories.directory import CandidateDirectoryRepository, CompanyRepository
from database.repositories.notification import ShortlistEmailRepository

__all__ = [
    'BaseRepository',
    'ShortlistRequestRepository',
    'ShortlistCandidateRepository',
    'PaymentRepository',
    'EventRepository',
    'CandidateDirectoryRepository',
    'CompanyRepository',
    'ShortlistEmailRepository',
]
