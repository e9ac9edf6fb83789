"""Hook protocol adapter: tool-invocation JSON in, permission decision JSON out."""

from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_serializer

from bashscan.core.category import CategoryClassifier
from bashscan.core.safety.audit import AuditLogger
from bashscan.core.safety.scanner import Scanner
from bashscan.exceptions import HookInputError

logger = structlog.get_logger()

BASH_TOOL = "Bash"
SCAN_PASSED_REASON = "bash scan passed"


class PermissionDecision(Enum):
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class HookInput(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    session_id: str = ""
    transcript_path: str = ""
    tool_name: str = ""
    tool_input: dict[str, Any] = {}
    tool_output: Any = None
    cwd: str = ""

    @property
    def command(self) -> str:
        value = self.tool_input.get("command", "")
        return value if isinstance(value, str) else ""

    @property
    def file_path(self) -> str:
        value = self.tool_input.get("file_path", "")
        return value if isinstance(value, str) else ""

    @classmethod
    def from_json(cls, raw: str | bytes) -> "HookInput":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise HookInputError(f"invalid hook input: {e}") from e


class HookSpecificOutput(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    permission_decision: PermissionDecision = Field(alias="permissionDecision")
    reason: str = ""

    @model_serializer(mode="wrap")
    def _serialize(self, handler):
        data = handler(self)
        return {k: v for k, v in data.items() if v != ""}


class HookOutput(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    continue_: bool = Field(default=True, alias="continue")
    stop_reason: str = Field(default="", alias="stopReason")
    hook_specific_output: HookSpecificOutput | None = Field(
        default=None, alias="hookSpecificOutput"
    )

    @model_serializer(mode="wrap")
    def _serialize(self, handler):
        data = handler(self)
        return {k: v for k, v in data.items() if v not in ("", None)}

    @property
    def decision(self) -> PermissionDecision | None:
        if self.hook_specific_output is None:
            return None
        return self.hook_specific_output.permission_decision

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def _decision(decision: PermissionDecision, reason: str = "") -> HookOutput:
    return HookOutput(
        hook_specific_output=HookSpecificOutput(
            permission_decision=decision, reason=reason
        )
    )


class HookHandler:
    """Turns one hook invocation into an allow/deny decision.

    Only ``Bash`` calls are scanned. Everything else is allowed through, and
    ``continue`` stays true on a denial so the agent can react to the reason.
    """

    def __init__(
        self,
        scanner: Scanner,
        audit: AuditLogger | None = None,
        categories: CategoryClassifier | None = None,
    ) -> None:
        self._scanner = scanner
        self._audit = audit
        self._categories = categories

    def handle(self, hook_input: HookInput) -> HookOutput:
        command = hook_input.command
        if hook_input.tool_name != BASH_TOOL or not command.strip():
            logger.debug("hook_passthrough", tool_name=hook_input.tool_name)
            self._record(hook_input, PermissionDecision.ALLOW)
            return _decision(PermissionDecision.ALLOW)

        result = self._scanner.scan(command)
        if result.allowed:
            decision, reason = PermissionDecision.ALLOW, SCAN_PASSED_REASON
        else:
            decision, reason = PermissionDecision.DENY, result.reason
            logger.info(
                "bash_command_denied",
                session_id=hook_input.session_id,
                reason=reason,
                violations=len(result.violations),
            )

        self._record(hook_input, decision, reason=reason, scan=result)
        return _decision(decision, reason)

    def _record(
        self,
        hook_input: HookInput,
        decision: PermissionDecision,
        **kwargs: Any,
    ) -> None:
        if self._audit is None:
            return
        category = None
        if self._categories is not None:
            if hook_input.tool_name == BASH_TOOL:
                category = self._categories.classify_bash(hook_input.command)
            else:
                category = self._categories.classify_tool_with_path(
                    hook_input.tool_name, hook_input.file_path
                )
        self._audit.log_decision(
            hook_input.session_id,
            hook_input.tool_name,
            decision.value,
            command=hook_input.command or None,
            category=category.value if category else None,
            **kwargs,
        )
