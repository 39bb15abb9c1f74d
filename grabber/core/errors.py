"""
Error taxonomy for grabber.

- GrabberError: base class of every custom error
- ConfigError: fatal configuration problems (startup, recipe loading, registry)
- ActionError: per-action failures; subclasses narrow the category
"""
# @file purpose: Define error taxonomy for grabber.

from typing import Any, Sequence


class GrabberError(Exception):
    """Base class for all custom errors in grabber."""


class ConfigError(GrabberError):
    """Raised on registry conflicts, missing/invalid recipes or unknown recipe names."""


class ActionError(GrabberError):
    """
    A single action could not complete.

    The CLI, the service and the structured log all render it through
    `str()`, so the selector/url/details context travels with the message.
    """

    def __init__(
        self,
        action: str,
        message: str,
        *,
        selector: str | None = None,
        url: str | None = None,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.action = action
        self.selector = selector
        self.url = url
        self.details: dict[str, Any] = dict(details or {})
        self.cause = cause

    @property
    def message(self) -> str:
        return super().__str__()

    def context(self) -> dict[str, Any]:
        """Non-empty context fields, in rendering order."""
        ctx: dict[str, Any] = {"selector": self.selector, "url": self.url, **self.details}
        return {k: v for k, v in ctx.items() if v not in (None, "")}

    def __str__(self) -> str:
        head = f"[{self.action}] {self.message}"
        extra = self.context()
        if not extra:
            return head
        return head + " (" + "; ".join(f"{k}: {v}" for k, v in extra.items()) + ")"


class ActionValidationError(ActionError):
    """Action params do not match the action's schema."""

    def __init__(self, action: str, issues: Sequence[str]) -> None:
        super().__init__(action, f"Invalid parameters: {'; '.join(issues)}")
        self.issues: list[str] = list(issues)


class SelectorError(ActionError):
    """A waited-for element did not appear, or nothing matched the given text/attribute."""

    def __init__(
        self,
        action: str,
        selector: str,
        *,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            action,
            f"Selector not found or not visible: {selector}",
            selector=selector,
            details=details,
            cause=cause,
        )


class NetworkError(ActionError):
    """Navigation, HTTP or cookie-bearing step failed."""

    def __init__(self, action: str, url: str, cause: BaseException | None = None) -> None:
        details = {"cause": str(cause)} if cause is not None else None
        super().__init__(
            action, f"Network request failed: {url}", url=url, details=details, cause=cause
        )


class FileSystemError(ActionError):
    """A filesystem primitive failed."""

    def __init__(
        self, action: str, operation: str, path: str, cause: BaseException | None = None
    ) -> None:
        details = {"cause": str(cause)} if cause is not None else None
        super().__init__(
            action, f"File system {operation} failed: {path}", details=details, cause=cause
        )
        self.operation = operation
        self.path = path


class ExpressionError(ActionError):
    """Parse, policy or runtime failure inside the safe expression evaluator."""

    def __init__(self, expression: str, rule: str) -> None:
        super().__init__("expression", f"{rule} (in expression {expression!r})")
        self.expression = expression
        self.rule = rule


class UnknownActionError(ActionError):
    """The action name is not present in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(name, f"Action not registered: {name}")


class DeferredActionsError(ActionError):
    """Several fire-and-forget actions failed before the end-of-run barrier."""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        summary = "; ".join(str(e) for e in errors)
        super().__init__("await", f"{len(errors)} deferred actions failed: {summary}")
        self.errors: list[BaseException] = list(errors)
