"""
Form Automator Service.

Fills and submits one in-page form:

    WaitingForForm -> FillingFields -> Submitting -> WaitingForNavigation -> Done

Any failure jumps straight to Done and raises FormError. Nothing is retried.
"""

import asyncio
import logging
from enum import Enum
from typing import List, Mapping, Optional

from ..config import Settings
from ..errors import FormError, RenderError
from .driver import BrowserSession

logger = logging.getLogger("crawly.forms")

# Native submit(); does not fire the form's submit event.
SUBMIT_FORM_SCRIPT = "(selector) => document.querySelector(selector).submit()"


class FormState(str, Enum):
    WAITING_FOR_FORM = "waiting_for_form"
    FILLING_FIELDS = "filling_fields"
    SUBMITTING = "submitting"
    WAITING_FOR_NAVIGATION = "waiting_for_navigation"
    DONE = "done"


def field_selector(form_selector: str, field_name: str) -> str:
    return f'{form_selector} [name="{field_name}"]'


class FormAutomator:
    """
    Runs the form state machine against a browser session.

    One instance per job; `state`, `filled_fields` and `skipped_fields`
    describe the last run.
    """

    def __init__(
        self,
        selector_timeout_ms: int = 5000,
        field_timeout_ms: int = 5000,
        navigation_timeout_ms: int = 30000,
        strict_fields: bool = True,
    ):
        self.selector_timeout_ms = selector_timeout_ms
        self.field_timeout_ms = field_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self.strict_fields = strict_fields
        self.state = FormState.WAITING_FOR_FORM
        self.filled_fields: List[str] = []
        self.skipped_fields: List[str] = []

    @classmethod
    def from_settings(cls, config: Settings) -> "FormAutomator":
        return cls(
            selector_timeout_ms=config.form_selector_timeout_ms,
            field_timeout_ms=config.form_field_timeout_ms,
            navigation_timeout_ms=config.form_navigation_timeout_ms,
            strict_fields=config.form_strict_fields,
        )

    def _transition(self, state: FormState) -> None:
        logger.debug(f"Form automation: {self.state.value} -> {state.value}")
        self.state = state

    async def fill_and_submit(
        self,
        session: BrowserSession,
        form_selector: str,
        form_data: Mapping[str, str],
        submit_selector: Optional[str] = None,
    ) -> None:
        """
        Fill every field of the form, submit it and wait for the navigation.

        Args:
            session: Browser session positioned on the page with the form
            form_selector: CSS selector of the form
            form_data: Field name -> value, filled in mapping order
            submit_selector: Control to click; native submit() if omitted

        Raises:
            FormError: With the failing stage and underlying cause
        """
        self.state = FormState.WAITING_FOR_FORM
        self.filled_fields = []
        self.skipped_fields = []

        loop = asyncio.get_running_loop()
        slow_warning = None

        try:
            logger.debug(f"Waiting for form selector: {form_selector}")
            await session.wait_for_selector(form_selector, timeout_ms=self.selector_timeout_ms)

            self._transition(FormState.FILLING_FIELDS)
            for field_name, value in form_data.items():
                await self._fill_field(session, form_selector, field_name, value)

            async with session.expect_navigation(timeout_ms=self.navigation_timeout_ms):
                self._transition(FormState.SUBMITTING)
                await self._submit(session, form_selector, submit_selector)
                self._transition(FormState.WAITING_FOR_NAVIGATION)
                slow_warning = loop.call_later(
                    self.navigation_timeout_ms / 2000,
                    logger.warning,
                    f"Form navigation taking longer than {self.navigation_timeout_ms // 2}ms "
                    f"for form '{form_selector}'",
                )
        except RenderError as e:
            stage = self.state
            self._transition(FormState.DONE)
            raise FormError(
                f"Form submission failed while {stage.value.replace('_', ' ')}: {e}",
                stage=stage.value,
                cause=e,
            ) from e
        finally:
            if slow_warning is not None:
                slow_warning.cancel()

        self._transition(FormState.DONE)
        logger.debug(f"Form submitted, {len(self.filled_fields)} fields filled")

    async def _fill_field(
        self,
        session: BrowserSession,
        form_selector: str,
        field_name: str,
        value: str,
    ) -> None:
        selector = field_selector(form_selector, field_name)
        logger.debug(f"Filling field: {field_name}")
        try:
            await session.wait_for_selector(selector, timeout_ms=self.field_timeout_ms)
            await session.type(selector, value)
        except RenderError as e:
            if self.strict_fields:
                raise
            logger.warning(f"Field not found, skipping: {field_name} ({e})")
            self.skipped_fields.append(field_name)
            return
        self.filled_fields.append(field_name)

    async def _submit(
        self,
        session: BrowserSession,
        form_selector: str,
        submit_selector: Optional[str],
    ) -> None:
        if submit_selector:
            logger.debug(f"Clicking submit button: {submit_selector}")
            await session.click(submit_selector)
        else:
            logger.debug("Programmatically submitting form")
            await session.evaluate(SUBMIT_FORM_SCRIPT, form_selector)
