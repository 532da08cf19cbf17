import asyncio
import functools
import json
import logging
import os
import tempfile
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from cardpoints.domain.errors import RuleNotFoundError, ValidationError
from cardpoints.domain.models import RewardRule, RuleDraft

logger = logging.getLogger(__name__)

_RULES_ADAPTER = TypeAdapter(list[RewardRule])


class RuleStore(Protocol):
    async def list_rules(self, instrument_type_id: str) -> list[RewardRule]: ...

    async def get_rule(self, rule_id: str) -> RewardRule | None: ...

    async def create_rule(self, draft: RuleDraft | dict) -> RewardRule: ...

    async def update_rule(self, rule: RewardRule) -> RewardRule: ...

    async def delete_rule(self, rule_id: str) -> None: ...


def sort_by_priority(rules: list[RewardRule]) -> list[RewardRule]:
    # Equal priorities fall back to ascending id so evaluation order is stable.
    return sorted(rules, key=lambda rule: (-rule.priority, rule.id))


def _validated(payload: dict, model: type[RuleDraft]) -> RuleDraft:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Rule name must not be empty.")
    payload["name"] = name
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid reward rule: {exc}") from exc


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRuleStore:
    def __init__(self, rules: list[RewardRule] | None = None):
        self._rules: dict[str, RewardRule] = {rule.id: rule for rule in rules or []}
        self._lock = asyncio.Lock()

    async def list_rules(self, instrument_type_id: str) -> list[RewardRule]:
        selected = [r for r in self._rules.values() if r.instrument_type_id == instrument_type_id]
        return sort_by_priority(selected)

    async def get_rule(self, rule_id: str) -> RewardRule | None:
        return self._rules.get(rule_id)

    async def create_rule(self, draft: RuleDraft | dict) -> RewardRule:
        payload = draft.model_dump() if isinstance(draft, BaseModel) else dict(draft)
        validated = _validated(payload, RuleDraft)
        now = _now()
        rule = RewardRule(
            **validated.model_dump(),
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._commit({**self._rules, rule.id: rule})
        logger.info("created rule %s (%s) for %s", rule.id, rule.name, rule.instrument_type_id)
        return rule

    async def update_rule(self, rule: RewardRule) -> RewardRule:
        async with self._lock:
            existing = self._rules.get(rule.id)
            if existing is None:
                raise RuleNotFoundError(rule.id)
            payload = rule.model_dump()
            payload["created_at"] = existing.created_at
            payload["updated_at"] = _now()
            updated = _validated(payload, RewardRule)
            self._commit({**self._rules, updated.id: updated})
        logger.info("updated rule %s (%s)", updated.id, updated.name)
        return updated

    async def delete_rule(self, rule_id: str) -> None:
        async with self._lock:
            removed = self._rules.get(rule_id)
            if removed is not None:
                self._commit({key: rule for key, rule in self._rules.items() if key != rule_id})
        if removed is None:
            logger.debug("delete of unknown rule %s ignored", rule_id)
        else:
            logger.info("deleted rule %s", rule_id)

    def _commit(self, rules: dict[str, RewardRule]) -> None:
        # Persist first so a failed write leaves the current rules untouched.
        self._persist(rules)
        self._rules = rules

    def _persist(self, rules: dict[str, RewardRule]) -> None:
        """In-memory rules live only as long as the process; nothing to write."""


class JsonRuleStore(InMemoryRuleStore):
    def __init__(self, rules_file: str):
        self.rules_file = Path(rules_file)
        super().__init__(self._load())

    def _load(self) -> list[RewardRule]:
        if not self.rules_file.exists():
            logger.info("rules file %s not found, starting empty", self.rules_file)
            return []

        with self.rules_file.open("r", encoding="utf-8") as fh:
            data = json.load(fh)

        try:
            return _RULES_ADAPTER.validate_python(data)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid rules file {self.rules_file}: {exc}") from exc

    def _persist(self, rules: dict[str, RewardRule]) -> None:
        self.rules_file.parent.mkdir(parents=True, exist_ok=True)
        payload = _RULES_ADAPTER.dump_python(sort_by_priority(list(rules.values())), mode="json")

        fp = tempfile.NamedTemporaryFile(
            mode="w",
            suffix=".json",
            prefix=".rules_",
            dir=self.rules_file.parent,
            delete=False,
            encoding="utf-8",
        )
        try:
            with fp:
                json.dump(payload, fp, ensure_ascii=False, indent=2)
            os.replace(fp.name, self.rules_file)
        except Exception:
            Path(fp.name).unlink(missing_ok=True)
            raise


class CachingRuleStore:
    """Short-lived read cache in front of another store.

    Entries are keyed by instrument type and dropped on any write touching that
    type. Concurrent readers of a type that is not cached yet await the same
    in-flight fetch, so a simulation batch hits the inner store once per type.
    A failed fetch is not cached.
    """

    def __init__(self, inner: RuleStore, ttl_seconds: float = 30.0, clock=time.monotonic):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, list[RewardRule]]] = {}
        self._inflight: dict[str, asyncio.Future] = {}

    async def list_rules(self, instrument_type_id: str) -> list[RewardRule]:
        entry = self._entries.get(instrument_type_id)
        if entry is not None and self._clock() - entry[0] < self.ttl_seconds:
            return list(entry[1])

        fetch = self._inflight.get(instrument_type_id)
        if fetch is None:
            fetch = asyncio.ensure_future(self.inner.list_rules(instrument_type_id))
            self._inflight[instrument_type_id] = fetch
            fetch.add_done_callback(functools.partial(self._fetched, instrument_type_id))

        # Shielded so one caller timing out does not cancel the fetch for the others.
        rules = await asyncio.shield(fetch)
        return list(rules)

    def _fetched(self, instrument_type_id: str, fetch: asyncio.Future) -> None:
        failed = fetch.cancelled() or fetch.exception() is not None
        if self._inflight.get(instrument_type_id) is not fetch:
            return
        del self._inflight[instrument_type_id]
        if failed:
            return
        self._entries[instrument_type_id] = (self._clock(), fetch.result())

    async def get_rule(self, rule_id: str) -> RewardRule | None:
        return await self.inner.get_rule(rule_id)

    async def create_rule(self, draft: RuleDraft | dict) -> RewardRule:
        rule = await self.inner.create_rule(draft)
        self.invalidate(rule.instrument_type_id)
        return rule

    async def update_rule(self, rule: RewardRule) -> RewardRule:
        previous = await self.inner.get_rule(rule.id)
        updated = await self.inner.update_rule(rule)
        if previous is not None:
            self.invalidate(previous.instrument_type_id)
        self.invalidate(updated.instrument_type_id)
        return updated

    async def delete_rule(self, rule_id: str) -> None:
        previous = await self.inner.get_rule(rule_id)
        await self.inner.delete_rule(rule_id)
        if previous is not None:
            self.invalidate(previous.instrument_type_id)

    def invalidate(self, instrument_type_id: str | None = None) -> None:
        if instrument_type_id is None:
            self._entries.clear()
            self._inflight.clear()
        else:
            self._entries.pop(instrument_type_id, None)
            self._inflight.pop(instrument_type_id, None)
