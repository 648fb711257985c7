"""Action resolution — proposals to concrete, single-target actions.

Search-based UPDATE/DELETE proposals fan out into one action per matching
record (capped by ``max_matches``). READ proposals run immediately. Store
failures degrade to notices in the turn summary.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from jarvis.domain.errors import ResolutionError
from jarvis.domain.models import ActionProposal, ActionStatus, EntityType, ResolvedAction, Verb
from jarvis.domain.search import SearchCriteria
from jarvis.ports.outbound import EntityStorePort, records


def _log(msg: str):
    print(msg, file=sys.stderr)


DESCRIPTION_TEMPLATES: Dict[Verb, str] = {
    Verb.CREATE: 'Create {entity}: "{title}"',
    Verb.READ: "Read {entity}s ({criteria})",
    Verb.UPDATE: 'Update {entity}: "{title}"',
    Verb.DELETE: 'Delete {entity}: "{title}"',
}

# Context handed to the model on a needsContext follow-up
_CONTEXT_LIMIT = 10


def describe(verb: Verb, entity_type: EntityType, title: str = "", criteria: str = "") -> str:
    return DESCRIPTION_TEMPLATES[verb].format(entity=entity_type.label, title=title, criteria=criteria)


@dataclass
class Resolution:
    actions: List[ResolvedAction] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)
    # (verb, entity_type, target_id) already bound in this resolution
    targets: Set[Tuple[Verb, EntityType, str]] = field(default_factory=set, repr=False)

    def add(self, action: ResolvedAction) -> bool:
        if action.target_id is not None:
            key = (action.verb, action.entity_type, action.target_id)
            if key in self.targets:
                self.notices.append(f"{action.description} was requested more than once; it is listed only once.")
                return False
            self.targets.add(key)
        self.actions.append(action)
        return True


class ActionResolver:
    """Expands ActionProposals against the entity store."""

    def __init__(self, store: EntityStorePort, max_matches: int = 10, read_limit: int = 20):
        if max_matches < 1:
            raise ValueError("max_matches must be at least 1")
        self._store = store
        self.max_matches = max_matches
        self.read_limit = read_limit
        self._handlers: Dict[Verb, Callable] = {
            Verb.CREATE: self._resolve_create,
            Verb.READ: self._resolve_read,
            Verb.UPDATE: self._resolve_mutation,
            Verb.DELETE: self._resolve_mutation,
        }

    async def resolve(self, proposals: List[ActionProposal], user_id: str) -> Resolution:
        resolution = Resolution()
        for proposal in proposals:
            await self._handlers[proposal.verb](proposal, user_id, resolution)
        return resolution

    async def search(
        self,
        entity_type: EntityType,
        criteria: SearchCriteria,
        user_id: str,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Search primitive shared with the extractor. Raises ResolutionError."""
        try:
            result = await self._store.search(user_id, entity_type, criteria, limit=limit)
        except Exception as e:
            raise ResolutionError(str(e)) from e
        if not result.success:
            raise ResolutionError(result.error or "store query failed")
        return records(result)

    async def gather_context(self, proposals: List[ActionProposal], user_id: str) -> Dict[str, Any]:
        """Records relevant to the proposals, for a needsContext follow-up prompt."""
        context: Dict[str, List[Dict[str, Any]]] = {"tasks": [], "events": []}
        seen = set()
        for proposal in proposals:
            criteria = SearchCriteria.from_params(proposal.search_criteria)
            try:
                found = await self.search(proposal.entity_type, criteria, user_id, limit=_CONTEXT_LIMIT)
            except ResolutionError as e:
                _log(f"[resolver] context query failed for {proposal.verb.value} {proposal.entity_type.value}: {e}")
                continue
            bucket = context["tasks" if proposal.entity_type is EntityType.TASK else "events"]
            for record in found:
                key = (proposal.entity_type, record.get("id"))
                if key in seen:
                    continue
                seen.add(key)
                bucket.append(record)
        return context

    async def _resolve_create(self, proposal: ActionProposal, user_id: str, resolution: Resolution):
        title = str(proposal.params.get("title") or "").strip()
        resolution.actions.append(ResolvedAction(
            verb=Verb.CREATE,
            entity_type=proposal.entity_type,
            params={k: v for k, v in proposal.params.items() if k != "id"},
            description=describe(Verb.CREATE, proposal.entity_type, title=title or "untitled"),
        ))

    async def _resolve_read(self, proposal: ActionProposal, user_id: str, resolution: Resolution):
        criteria = SearchCriteria.from_params(proposal.search_criteria)
        action = ResolvedAction(
            verb=Verb.READ,
            entity_type=proposal.entity_type,
            params={"searchParams": criteria.to_dict()},
            description=describe(Verb.READ, proposal.entity_type, criteria=criteria.describe()),
        )
        # Reads never wait for confirmation
        try:
            action.results = await self.search(proposal.entity_type, criteria, user_id, limit=self.read_limit)
            action.status = ActionStatus.EXECUTED
        except ResolutionError as e:
            _log(f"[resolver] read failed: {e}")
            action.status = ActionStatus.FAILED
            action.error = str(e)
            action.results = []
            resolution.notices.append(f"I couldn't look up your {proposal.entity_type.label}s right now.")
        resolution.actions.append(action)

    async def _resolve_mutation(self, proposal: ActionProposal, user_id: str, resolution: Resolution):
        label = proposal.entity_type.label
        verb_word = proposal.verb.value.lower()
        if proposal.verb is Verb.UPDATE and not proposal.updates:
            resolution.notices.append(f"No changes were specified for the {label} update, so nothing was proposed.")
            return

        if proposal.target_id:
            await self._resolve_direct(proposal, user_id, resolution)
            return

        if not proposal.search_criteria:
            resolution.notices.append(f"I couldn't tell which {label} to {verb_word}.")
            return

        criteria = SearchCriteria.from_params(proposal.search_criteria)
        if criteria.is_empty:
            resolution.notices.append(f"I couldn't tell which {label}s to {verb_word}.")
            return

        try:
            # One extra row tells us whether the cap cut anything off
            matches = await self.search(proposal.entity_type, criteria, user_id, limit=self.max_matches + 1)
        except ResolutionError as e:
            _log(f"[resolver] search failed while expanding {proposal.verb.value}: {e}")
            resolution.notices.append(
                f"Warning: I couldn't search your {label}s ({e}), so nothing was proposed."
            )
            return

        unique: List[Dict[str, Any]] = []
        seen = set()
        for record in matches:
            record_id = record.get("id")
            if not record_id or record_id in seen:
                continue
            seen.add(record_id)
            unique.append(record)

        if not unique:
            resolution.notices.append(f"No {label}s matched {criteria.describe()}.")
            return

        if len(unique) > self.max_matches:
            resolution.notices.append(
                f"More than {self.max_matches} {label}s matched; only the first {self.max_matches} are listed."
            )
            unique = unique[:self.max_matches]

        for record in unique:
            resolution.add(self._bind(proposal, str(record["id"]), record))

    async def _resolve_direct(self, proposal: ActionProposal, user_id: str, resolution: Resolution):
        record: Optional[Dict[str, Any]] = None
        try:
            result = await self._store.get(user_id, proposal.entity_type, proposal.target_id)
            if result.success and isinstance(result.data, dict):
                record = result.data
        except Exception as e:
            _log(f"[resolver] lookup of {proposal.target_id} failed: {e}")
        resolution.add(self._bind(proposal, proposal.target_id, record))

    @staticmethod
    def _bind(proposal: ActionProposal, target_id: str, record: Optional[Dict[str, Any]]) -> ResolvedAction:
        title = str((record or {}).get("title") or target_id)
        return ResolvedAction(
            verb=proposal.verb,
            entity_type=proposal.entity_type,
            params={"id": target_id},
            target_id=target_id,
            updates=dict(proposal.updates) if proposal.updates else None,
            item=record,
            description=describe(proposal.verb, proposal.entity_type, title=title),
        )
