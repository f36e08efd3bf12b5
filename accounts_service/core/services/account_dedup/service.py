"""
Duplicate Candidate Finder.

Two entry points:
- Targeted lookup for one candidate field set: exact matches from storage
  plus fuzzy-scored members of a coarse "name contains" superset.
- Tenant-wide sweep: all-pairs comparison, O(n^2) scorer calls. Meant for
  maintenance jobs. It takes no write lock, so accounts changed mid-sweep
  may be missed or reported from a stale version.
"""

import logging
from typing import Any, Dict, List, Optional

from accounts_service.app.config import get_settings
from accounts_service.app.models import Account
from accounts_service.core.exceptions import AccountNotFoundError
from accounts_service.core.services._shared import validate_tenant_id
from accounts_service.core.services.account_dedup.similarity import FieldWeights, SimilarityScorer
from accounts_service.core.services.account_store import AccountStore

logger = logging.getLogger(__name__)


class DuplicateFinder:
    """Finds probable duplicate accounts within one tenant."""

    def __init__(
        self,
        store: AccountStore,
        scorer: Optional[SimilarityScorer] = None,
        threshold: Optional[float] = None,
    ):
        settings = get_settings()
        self.store = store
        self.scorer = scorer or SimilarityScorer(
            FieldWeights.from_mapping(settings.load_similarity_weights())
        )
        self.threshold = settings.duplicate_similarity_threshold if threshold is None else threshold

    def is_duplicate_score(self, score: float) -> bool:
        return score >= self.threshold

    async def find_potential_duplicates(
        self,
        candidate: Any,
        tenant_id: str,
        exclude_id: Optional[str] = None,
    ) -> List[Account]:
        """
        Accounts that probably duplicate ``candidate``.

        Args:
            candidate: Object with name/website/phone/industry/account_type attributes
            tenant_id: Tenant to search
            exclude_id: Account id never returned (the candidate itself on update)

        Returns:
            Exact matches first, then fuzzy matches, each account at most once
        """
        validate_tenant_id(tenant_id)
        repo = self.store.accounts

        name = getattr(candidate, "name", None)
        website = getattr(candidate, "website", None)
        phone = getattr(candidate, "phone", None)

        found: Dict[str, Account] = {}
        for acc in repo.find_exact_matches(tenant_id, name, website, phone, exclude_id):
            found.setdefault(acc.id, acc)
        exact_count = len(found)

        if name and name.strip():
            for acc in repo.find_by_name_containing(tenant_id, name.strip()):
                if acc.id in found or acc.id == exclude_id:
                    continue
                if self.is_duplicate_score(self.scorer.score(candidate, acc)):
                    found[acc.id] = acc

        logger.debug(
            f"Duplicate lookup found {len(found)} candidate(s) ({exact_count} exact)",
            extra={"tenant_id": tenant_id, "exclude_id": exclude_id}
        )
        return list(found.values())

    async def find_duplicates_for_account(self, tenant_id: str, account_id: str) -> List[Account]:
        """Duplicate candidates for a stored account, excluding the account itself."""
        validate_tenant_id(tenant_id)
        account = self.store.accounts.find_by_id(tenant_id, account_id)
        if account is None:
            raise AccountNotFoundError(account_id, tenant_id)
        return await self.find_potential_duplicates(account, tenant_id, exclude_id=account.id)

    async def find_all_potential_duplicates_in_tenant(self, tenant_id: str) -> List[Account]:
        """Every account that scores at or above the threshold against at least one other account."""
        validate_tenant_id(tenant_id)
        accounts = self.store.accounts.find_by_tenant(tenant_id)

        flagged: Dict[str, Account] = {}
        comparisons = 0
        for i in range(len(accounts)):
            for j in range(i + 1, len(accounts)):
                comparisons += 1
                if self.is_duplicate_score(self.scorer.score(accounts[i], accounts[j])):
                    flagged.setdefault(accounts[i].id, accounts[i])
                    flagged.setdefault(accounts[j].id, accounts[j])

        logger.info(
            f"Tenant duplicate sweep flagged {len(flagged)} of {len(accounts)} accounts",
            extra={"tenant_id": tenant_id, "comparisons": comparisons}
        )
        return list(flagged.values())
