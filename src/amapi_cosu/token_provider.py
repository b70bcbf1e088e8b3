from __future__ import annotations

from typing import Protocol, TextIO

from rich.console import Console
from rich.prompt import Prompt

from amapi_cosu.models import SignupUrl


class EnterpriseTokenProvider(Protocol):
    def get_enterprise_token(self, signup_url: SignupUrl) -> str: ...


class ConsoleTokenProvider:
    """Show the signup URL and block until the operator pastes the enterprise token.

    The pasted value is passed through as-is (minus surrounding whitespace);
    a bad token is rejected by the API, not here.
    """

    def __init__(self, console: Console, *, stream: TextIO | None = None):
        self.console = console
        self.stream = stream

    def get_enterprise_token(self, signup_url: SignupUrl) -> str:
        self.console.print(
            "To sign up for a new enterprise, open this URL in your browser:"
        )
        self.console.print(signup_url.url, markup=False, highlight=False, soft_wrap=True)
        self.console.print("After signup, you will see an error page in the browser.")
        value = Prompt.ask(
            "Paste the enterpriseToken value from the error page URL here",
            console=self.console,
            stream=self.stream,
            default="",
            show_default=False,
        )
        return (value or "").strip()


class StaticTokenProvider:
    def __init__(self, token: str):
        self.token = token

    def get_enterprise_token(self, signup_url: SignupUrl) -> str:
        return self.token
