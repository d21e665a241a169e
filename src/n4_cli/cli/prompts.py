"""Terminal prompts backed by questionary."""

import questionary

from n4_cli.cli.ux import PROMPT_STYLE
from n4_cli.exceptions import ProvisioningAbortedError
from n4_cli.protocols.prompts import Choice


class QuestionaryPrompter:
    """:class:`PromptProvider` that asks on the terminal.

    questionary returns ``None`` when the user hits Ctrl-C; that ends the
    run as an explicit exit.
    """

    def __init__(self, style: questionary.Style = PROMPT_STYLE) -> None:
        self.style = style

    @staticmethod
    def _answered(answer):
        if answer is None:
            raise ProvisioningAbortedError("Cancelled by user")
        return answer

    async def ask_choice(self, message: str, choices: list[Choice]) -> str:
        question = questionary.select(
            message,
            choices=[questionary.Choice(title=c.title, value=c.value) for c in choices],
            style=self.style,
        )
        return self._answered(await question.ask_async())

    async def ask_text(
        self,
        message: str,
        default: str | None = None,
        secret: bool = False,
    ) -> str:
        if secret:
            question = questionary.password(message, default=default or "", style=self.style)
        else:
            question = questionary.text(message, default=default or "", style=self.style)
        return self._answered(await question.ask_async())

    async def ask_confirm(self, message: str, default: bool = True) -> bool:
        question = questionary.confirm(message, default=default, style=self.style)
        return self._answered(await question.ask_async())
