import threading
from typing import Dict, List, Optional, Sequence, Tuple

from sitecraft.features.analysis.schemas.finding import FindingDraft, ResolvedFinding
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)


class RuleCatalog:
    """
    rule_key -> rule_id lookup over the `rules` table.

    The catalog is seeded by migration and read-only at runtime, so it is
    loaded once per process and reloaded only when a key misses.
    """

    def __init__(self, status_store):
        self._store = status_store
        self._index: Optional[Dict[str, str]] = None
        self._lock = threading.Lock()

    def _load(self, force: bool = False) -> Dict[str, str]:
        with self._lock:
            if self._index is None or force:
                self._index = self._store.load_rule_index()
                logger.info(f"Loaded rule catalog ({len(self._index)} rules)")
            return self._index

    def lookup(self, rule_key: str) -> Optional[str]:
        rule_id = self._load().get(rule_key)
        if rule_id is None:
            rule_id = self._load(force=True).get(rule_key)
        return rule_id

    def resolve(self, drafts: Sequence[FindingDraft], context: str = "") -> Tuple[List[ResolvedFinding], List[str]]:
        """
        Split drafts into resolved findings and the rule keys that missed.

        A miss reloads the catalog at most once per call.
        """
        index = self._load()
        reloaded = False
        resolved: List[ResolvedFinding] = []
        missed: List[str] = []
        for draft in drafts:
            rule_id = index.get(draft.rule_key)
            if rule_id is None and not reloaded:
                index = self._load(force=True)
                reloaded = True
                rule_id = index.get(draft.rule_key)
            if rule_id is None:
                logger.warning(f"{context}Unknown rule key '{draft.rule_key}', dropping finding")
                missed.append(draft.rule_key)
                continue
            resolved.append(
                ResolvedFinding(
                    rule_id=rule_id,
                    rule_key=draft.rule_key,
                    severity=draft.severity,
                    message=draft.message,
                    location=draft.location,
                )
            )
        return resolved, missed
