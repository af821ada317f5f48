"""Portfolio data models"""

from portfolio_sync.models.candidate import CandidateRepository, RepositoryDetails
from portfolio_sync.models.collection import ProjectCollection
from portfolio_sync.models.project import DEFAULT_IMAGE, ProjectRecord
from portfolio_sync.models.verdicts import DuplicateVerdict, EnhancedText, RelevanceVerdict

__all__ = [
    "CandidateRepository",
    "RepositoryDetails",
    "ProjectCollection",
    "ProjectRecord",
    "DEFAULT_IMAGE",
    "RelevanceVerdict",
    "DuplicateVerdict",
    "EnhancedText",
]
