"""Rule script models."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Instruction(BaseModel):
    """A node of a rule script.

    Control-flow nodes (``if``, ``while``, ...) carry child lists; only
    ``relay_action`` leaves produce commands. Leaf fields are loosely typed so
    a malformed leaf is rejected on its own instead of failing the request.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    condition: Optional[dict[str, Any]] = None

    # relay_action fields
    target: Optional[Any] = None  # "master" or "slave"
    target_device_id: Optional[str] = None
    target_address: Optional[str] = Field(default=None, alias="slave_mac")
    relay_number: Optional[Any] = None
    action: Optional[Any] = None
    duration_seconds: Optional[Any] = None

    # Children
    body: list["Instruction"] = Field(default_factory=list)
    then: list["Instruction"] = Field(default_factory=list)
    else_: list["Instruction"] = Field(default_factory=list, alias="else")


Instruction.model_rebuild()


class RuleExecutionRequest(BaseModel):
    """Request to turn a rule script into queued commands."""

    origin_device_id: str
    origin_address: Optional[str] = None
    rule_id: str
    rule_name: Optional[str] = None
    priority: Optional[int] = None
    instructions: list[Instruction]


class RuleExecutionResult(BaseModel):
    """Outcome of executing a rule script."""

    success: bool
    commands_created: int = 0
    command_ids: list[str] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)
