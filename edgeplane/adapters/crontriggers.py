"""
Worker Cron Trigger adapter (kind "workers.CronTrigger").

Binding: the worker script name (a natural key). The remote service keeps
one schedule list per script, so create, update and delete all replace that
list; an empty list means no trigger exists.

Parameters:
  script_name   worker script the schedules belong to (required)
  crons         list of cron expressions (or "cron" for a single one)
  account_id    account override; otherwise resolved by AccountResolver
"""

import logging
from typing import List, Protocol

from croniter import croniter

from edgeplane.adapters.accounts import AccountResolver
from edgeplane.adapters.base import InvocationContext, call_remote
from edgeplane.adapters.drift import FieldSpec, compare_fields, sorted_list
from edgeplane.errors import InvalidParametersError, NotFoundError, TransientError
from edgeplane.models.outcome import Observation

logger = logging.getLogger(__name__)

KIND = "workers.CronTrigger"

CRON_FIELDS = (
    FieldSpec("script_name", optional=False),
    FieldSpec("crons", optional=False, normalize=sorted_list),
)


class CronTriggersClient(Protocol):
    """Transport for account-scoped worker schedule calls."""

    def get_cron_triggers(self, account_id: str, script_name: str) -> List[dict]: ...

    def update_cron_triggers(
        self, account_id: str, script_name: str, crons: List[str]
    ) -> List[dict]: ...


def desired_crons(params: dict) -> List[str]:
    """The declared schedules, validated with croniter."""
    crons = params.get("crons")
    if crons is None and params.get("cron"):
        crons = [params["cron"]]
    if not crons:
        raise InvalidParametersError("workers.CronTrigger requires at least one cron expression")
    if isinstance(crons, str):
        crons = [crons]

    cleaned = []
    for expr in crons:
        expr = str(expr).strip()
        if not croniter.is_valid(expr):
            raise InvalidParametersError(f"invalid cron expression: {expr!r}")
        cleaned.append(expr)
    return cleaned


class CronTriggerAdapter:
    """Maps declared cron triggers onto a worker script's schedule list."""

    def __init__(self, client: CronTriggersClient, accounts: AccountResolver):
        self.client = client
        self.accounts = accounts

    def _account(self, params: dict) -> str:
        return params.get("account_id") or self.accounts.resolve()

    def _script(self, params: dict) -> str:
        script = params.get("script_name")
        if not script:
            raise InvalidParametersError("workers.CronTrigger requires script_name")
        return script

    def _observe(self, script_name: str, triggers: List[dict]) -> Observation:
        return Observation(
            identifier=script_name,
            fields={
                "script_name": script_name,
                "crons": [t["cron"] for t in triggers if t.get("cron")],
            },
        )

    def _replace(
        self, script_name: str, params: dict, ctx: InvocationContext
    ) -> Observation:
        crons = desired_crons(params)
        account = self._account(params)
        triggers = call_remote(
            ctx, self.client.update_cron_triggers, account, script_name, crons
        )
        return self._observe(script_name, triggers)

    def create(self, params: dict, ctx: InvocationContext) -> Observation:
        return self._replace(self._script(params), params, ctx)

    def fetch(self, identifier: str, params: dict, ctx: InvocationContext) -> Observation:
        account = self._account(params)
        triggers = call_remote(ctx, self.client.get_cron_triggers, account, identifier)
        if not triggers:
            raise NotFoundError(f"no cron triggers for worker script {identifier!r}")
        return self._observe(identifier, triggers)

    def update(self, identifier: str, params: dict, ctx: InvocationContext) -> Observation:
        script = self._script(params)
        desired_crons(params)
        if script != identifier:
            # One mutating call per pass: clear the old script now. The next
            # fetch finds it empty and the new script's list is created then.
            self.delete(identifier, params, ctx)
            raise TransientError(
                f"cron triggers cleared from worker script {identifier!r}; "
                f"{script!r} is scheduled on the next pass"
            )
        return self._replace(script, params, ctx)

    def delete(self, identifier: str, params: dict, ctx: InvocationContext) -> None:
        try:
            call_remote(
                ctx, self.client.update_cron_triggers, self._account(params), identifier, []
            )
        except NotFoundError:
            logger.debug("cron triggers for %s already absent", identifier)

    def is_up_to_date(self, params: dict, observation: Observation) -> bool:
        try:
            crons = desired_crons(params)
        except InvalidParametersError:
            # Invalid declarations surface on the update call
            return False
        normalized = dict(params, crons=crons)
        return compare_fields(normalized, observation.fields, CRON_FIELDS).up_to_date
