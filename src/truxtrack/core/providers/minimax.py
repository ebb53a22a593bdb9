"""
Minimax tracking portal provider.

The portal is an Angular app: fill the search input, submit, and read the
status grid rows until the first row without a date.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from truxtrack.core.logging import ContextualLogger
from truxtrack.core.models import StatusRecord
from truxtrack.core.parsing import build_record, normalize_whitespace

from .base import BrowserProvider, ElementNotFound

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle

    from truxtrack.core.session import PlaywrightSession


INPUT_SELECTOR = "input#mat-input-2"
SUBMIT_SELECTOR = 'button[mattooltip="Click to search"]'
ROW_SELECTOR = 'tbody[role="presentation"] tr:not(:first-child):not(.dx-freespace-row)'

# Column positions in the status grid
DATE_COLUMN = 1
TIME_COLUMN = 2
STATUS_COLUMN = 7
LOCATION_COLUMN = 9


def record_from_cells(cells: list[str], company: str = "Minimax") -> StatusRecord | None:
    """Build a record from one grid row's cell texts.

    Returns:
        The record, or None when the row is not a usable status event
    """
    def cell(index: int) -> str:
        return normalize_whitespace(cells[index]) if index < len(cells) else ""

    return build_record(
        f"{cell(DATE_COLUMN)} {cell(TIME_COLUMN)}",
        cell(STATUS_COLUMN),
        location=cell(LOCATION_COLUMN),
        company=company,
    )


class MinimaxProvider(BrowserProvider["ElementHandle"]):
    """Looks up tracking numbers on the Minimax (DTMS) tracking portal."""

    provider_name = "minimax"

    async def _locate(
        self,
        session: PlaywrightSession,
        tracking_number: str,
        log: ContextualLogger,
    ) -> ElementHandle | None:
        page = session.page
        await self._navigate(page, log)

        log.info("Filling with tracking number...")
        try:
            input_field = await page.wait_for_selector(INPUT_SELECTOR)
        except PlaywrightTimeoutError as e:
            raise ElementNotFound(
                "Tracking input field not found.",
                provider=self.name,
                tracking_number=tracking_number,
                cause=e,
            ) from e
        if input_field is None:
            raise ElementNotFound(
                "Tracking input field not found.",
                provider=self.name,
                tracking_number=tracking_number,
            )

        await input_field.fill(tracking_number)

        log.info("Submitting...")
        await page.click(SUBMIT_SELECTOR)

        log.info("Waiting for status logs...")
        try:
            row = await page.wait_for_selector(ROW_SELECTOR)
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

                if len(cells) <= DATE_COLUMN or not cells[DATE_COLUMN].strip():
                    break

                record = record_from_cells(cells)
                if record is None:
                    log.warning(f"Skipping unreadable row: {' | '.join(cells)}")
                else:
                    log.info(f"Row: {record.timestamp:%Y-%m-%d %H:%M} | {record.status}")
                    records.append(record)

                sibling = await row.evaluate_handle("n => n.nextElementSibling")
                row = sibling.as_element()
        except PlaywrightError as e:
            # Keep the rows read so far
            log.error(f"Error reading status rows: {e}")

        return records
