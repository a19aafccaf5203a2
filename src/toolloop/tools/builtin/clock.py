"""Current time tool."""

from datetime import datetime, timezone, tzinfo
from typing import TYPE_CHECKING, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from toolloop.tools.base import Tool
from toolloop.tools.models import ToolExecutionResult

if TYPE_CHECKING:
    from toolloop.agent.models import AgentContext


class CurrentTimeInput(BaseModel):
    """Input for the current time tool."""

    timezone: Optional[str] = Field(
        default=None,
        description="IANA time zone name, e.g. 'Europe/Berlin'. Defaults to UTC.",
    )


class CurrentTimeTool(Tool[CurrentTimeInput]):
    """Report the current date and time in a time zone."""

    @property
    def name(self) -> str:
        return "current_time"

    @property
    def description(self) -> str:
        return (
            "Get the current date and time as an ISO-8601 timestamp. "
            "Optionally takes an IANA time zone name."
        )

    @property
    def input_schema(self) -> type[CurrentTimeInput]:
        return CurrentTimeInput

    async def execute(
        self, input: CurrentTimeInput, context: "AgentContext"
    ) -> ToolExecutionResult:
        zone: tzinfo = timezone.utc
        if input.timezone:
            try:
                zone = ZoneInfo(input.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                return ToolExecutionResult.fail(f"Unknown time zone: {input.timezone}")

        return ToolExecutionResult.ok(datetime.now(zone).isoformat(timespec="seconds"))
