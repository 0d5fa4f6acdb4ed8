"""Rule execution API endpoints."""

import logging

from fastapi import APIRouter

from hydro_server.api.deps import ApiKeyDep, RuleDispatcherDep
from hydro_server.models.rule import RuleExecutionRequest, RuleExecutionResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rules", tags=["rules"])


@router.post("/execute", response_model=RuleExecutionResult)
async def execute_rule(
    request: RuleExecutionRequest,
    rule_dispatcher: RuleDispatcherDep,
    _: ApiKeyDep,
) -> RuleExecutionResult:
    """Queue the relay actions of a rule script.

    Relay actions for the same device are merged into one command. Invalid
    actions are listed in ``errors`` while the valid ones are still queued.
    """
    return await rule_dispatcher.execute(request)
