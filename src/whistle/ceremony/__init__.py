"""
Trusted setup ceremony: the contribution chain and its artifact archive.
"""

from .archive import CeremonyArchive
from .chain import (
    GENESIS_HASH,
    SECURITY_ASSUMPTION,
    ContributionChain,
    ContributionRecord,
    LinkResult,
    LinkStatus,
    VerificationReport,
    verify_all,
)

__all__ = [
    "CeremonyArchive",
    "ContributionChain",
    "ContributionRecord",
    "LinkStatus",
    "LinkResult",
    "VerificationReport",
    "verify_all",
    "GENESIS_HASH",
    "SECURITY_ASSUMPTION",
]
