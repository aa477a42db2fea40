"""Repository modules for document store access."""

from repositories.ab_pair_repository import ABPairRepository
from repositories.counter_repository import CounterRepository
from repositories.message_repository import MessageRepository
from repositories.vote_repository import VoteRepository

__all__ = [
    "ABPairRepository",
    "CounterRepository",
    "MessageRepository",
    "VoteRepository",
]
