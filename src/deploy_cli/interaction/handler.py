"""Operator interaction handlers (confirmation gates, wizard questions)."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from rich.console import Console
from rich.prompt import Confirm, Prompt

logger = logging.getLogger(__name__)

_YES = ("y", "yes", "true", "1")


class InputType(str, Enum):
    """Type of operator input expected."""
    CHOICE = "choice"       # pick one of options
    TEXT = "text"           # free text
    CONFIRM = "confirm"     # yes / no
    SECRET = "secret"       # hidden input (passwords)


@dataclass
class InteractionRequest:
    """A question put to the operator."""

    question: str
    input_type: InputType = InputType.CONFIRM
    options: List[str] = field(default_factory=list)
    default: Optional[str] = None
    context: Optional[str] = None


@dataclass
class InteractionResponse:
    """Operator's answer to an interaction request."""

    value: str
    cancelled: bool = False

    @property
    def affirmative(self) -> bool:
        return not self.cancelled and self.value.strip().lower() in _YES

    @classmethod
    def cancelled_response(cls) -> "InteractionResponse":
        return cls(value="", cancelled=True)


class UserInteractionHandler(ABC):
    """Abstract base class for handling operator interactions.

    The pipeline only ever calls :meth:`confirm`; the configuration wizard
    also uses :meth:`text`, :meth:`choose` and :meth:`secret`.
    """

    @abstractmethod
    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """
        Present a request to the operator and get their response.

        Args:
            request: The interaction request to present

        Returns:
            The operator's response; Ctrl+C or end of input yields a cancelled response
        """

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        """Show a message that needs no answer."""

    def confirm(self, message: str, default: bool = False) -> bool:
        response = self.ask(
            InteractionRequest(
                question=message,
                input_type=InputType.CONFIRM,
                default="yes" if default else "no",
            )
        )
        return response.affirmative

    def text(self, message: str, default: Optional[str] = None) -> str:
        response = self.ask(InteractionRequest(question=message, input_type=InputType.TEXT, default=default))
        if response.cancelled:
            return default or ""
        return response.value

    def secret(self, message: str) -> str:
        response = self.ask(InteractionRequest(question=message, input_type=InputType.SECRET))
        return "" if response.cancelled else response.value

    def choose(self, message: str, options: Iterable[str], default: Optional[str] = None) -> str:
        options = list(options)
        response = self.ask(
            InteractionRequest(
                question=message,
                input_type=InputType.CHOICE,
                options=options,
                default=default,
            )
        )
        if response.cancelled or response.value not in options:
            return default if default is not None else options[0]
        return response.value


class CLIInteractionHandler(UserInteractionHandler):
    """Terminal interaction handler built on rich prompts."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        if request.context:
            self.console.print(f"[dim]{request.context}[/dim]")
        try:
            if request.input_type == InputType.CONFIRM:
                answer = Confirm.ask(
                    request.question,
                    default=(request.default or "no") in _YES,
                    console=self.console,
                )
                return InteractionResponse(value="yes" if answer else "no")
            if request.input_type == InputType.CHOICE:
                value = Prompt.ask(
                    request.question,
                    choices=request.options,
                    default=request.default,
                    console=self.console,
                )
                return InteractionResponse(value=value)
            if request.input_type == InputType.SECRET:
                value = Prompt.ask(request.question, password=True, console=self.console)
                return InteractionResponse(value=value)
            value = Prompt.ask(request.question, default=request.default, console=self.console)
            return InteractionResponse(value=value or "")
        except (KeyboardInterrupt, EOFError):
            self.console.print("\n[yellow](cancelled)[/yellow]")
            return InteractionResponse.cancelled_response()

    def notify(self, message: str, level: str = "info") -> None:
        styles = {
            "info": "cyan",
            "warning": "yellow",
            "error": "red",
            "success": "green",
        }
        self.console.print(f"[{styles.get(level, 'white')}]{message}[/]")


class CallbackInteractionHandler(UserInteractionHandler):
    """
    Interaction handler that uses callbacks.
    Useful when deploy-cli is driven from another program.
    """

    def __init__(
        self,
        ask_callback: Callable[[InteractionRequest], InteractionResponse],
        notify_callback: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        self.ask_callback = ask_callback
        self.notify_callback = notify_callback or (lambda msg, lvl: logger.info("[%s] %s", lvl, msg))

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        return self.ask_callback(request)

    def notify(self, message: str, level: str = "info") -> None:
        self.notify_callback(message, level)


class AutoResponseHandler(UserInteractionHandler):
    """
    Automatic response handler for tests and non-interactive runs.

    Answers come from ``responses`` (question keyword -> answer, first match
    wins), then the request default, then ``always_confirm`` for yes/no
    questions. Every question asked is recorded in ``asked``.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, str]] = None,
        always_confirm: bool = True,
        use_defaults: bool = True,
    ) -> None:
        self.responses = responses or {}
        self.always_confirm = always_confirm
        self.use_defaults = use_defaults
        self.asked: List[str] = []
        self.notifications: List[str] = []

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        self.asked.append(request.question)
        logger.info("Auto-responding to: %s", request.question[:60])

        for keyword, response in self.responses.items():
            if keyword.lower() in request.question.lower():
                return InteractionResponse(value=response)

        if request.input_type == InputType.CONFIRM:
            return InteractionResponse(value="yes" if self.always_confirm else "no")
        if self.use_defaults and request.default is not None:
            return InteractionResponse(value=request.default)
        if request.input_type == InputType.CHOICE and request.options:
            return InteractionResponse(value=request.options[0])
        return InteractionResponse(value="")

    def notify(self, message: str, level: str = "info") -> None:
        self.notifications.append(message)
        logger.info("[%s] %s", level, message)
