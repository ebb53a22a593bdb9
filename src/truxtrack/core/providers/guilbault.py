"""
Guilbault trace portal provider.

Submitting the order search opens the results in a new tab, so the
provider waits on a one-shot popup future before reading the grid.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from truxtrack.core.logging import ContextualLogger
from truxtrack.core.models import StatusRecord
from truxtrack.core.parsing import build_record

from .base import BrowserProvider, ElementNotFound, NavigationTimeout

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle

    from truxtrack.core.session import PlaywrightSession


INPUT_SELECTOR = (
    "//input[@type='hidden' and @value='~PTLORDER']"
    "/following-sibling::input[@name='search_value[]']"
)
SUBMIT_SELECTOR = "input[type='button'][value='Submit']"
ROW_SELECTOR = "div.k-grid-content tbody tr"

POPUP_TIMEOUT_SECONDS = 30.0


def record_from_cells(cells: list[str], company: str = "Guilbault") -> StatusRecord | None:
    """Build a record from a results grid row (date, status, ...)."""
    if len(cells) < 2:
        return None
    return build_record(cells[0], cells[1], company=company)


class GuilbaultProvider(BrowserProvider["ElementHandle"]):
    """Looks up order numbers on the Guilbault TMW trace portal."""

    provider_name = "guilbault"

    async def _locate(
        self,
        session: PlaywrightSession,
        tracking_number: str,
        log: ContextualLogger,
    ) -> ElementHandle | None:
        page = session.page
        await self._navigate(page, log)

        log.info("Locating tracking input field...")
        input_field = await page.query_selector(INPUT_SELECTOR)
        if input_field is None:
            raise ElementNotFound(
                "Tracking input field not found.",
                provider=self.name,
                tracking_number=tracking_number,
            )

        log.info("Filling tracking number...")
        await input_field.fill(tracking_number)

        popup_opened = session.expect_popup()

        log.info("Submitting...")
        await page.click(SUBMIT_SELECTOR)

        try:
            popup = await asyncio.wait_for(popup_opened, timeout=POPUP_TIMEOUT_SECONDS)
        except asyncio.TimeoutError as e:
            raise NavigationTimeout(
                "New tab did not open after submit.",
                provider=self.name,
                tracking_number=tracking_number,
                cause=e,
            ) from e

        if not page.is_closed():
            await page.close()

        await popup.wait_for_load_state("domcontentloaded")
        log.info(f"New tab loaded. URL: {popup.url}")

        log.info("Waiting for status logs...")
        try:
            row = await popup.wait_for_selector(ROW_SELECTOR, state="attached")
        except PlaywrightTimeoutError:
            log.warning("Status logs not available!")
            return None

        return row

    async def _extract(
        self,
        session: PlaywrightSession,
        located: ElementHandle,
        tracking_number: str,
        log: ContextualLogger,
    ) -> list[StatusRecord]:
        records: list[StatusRecord] = []
        row: ElementHandle | None = located

        try:
            while row is not None:
                cells = [await cell.inner_text() for cell in await row.query_selector_all("td")]

                record = record_from_cells(cells)
                if record is not None:
                    log.info(f"Row: {record.timestamp:%Y-%m-%d %H:%M} | {record.status}")
                    records.append(record)
                elif cells:
                    log.debug(f"Skipping row: {' | '.join(cells)}")

                sibling = await row.evaluate_handle("n => n.nextElementSibling")
                row = sibling.as_element()
        except PlaywrightError as e:
            log.error(f"Popup error reading status rows: {e}")

        return records
