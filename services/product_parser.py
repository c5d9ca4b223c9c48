"""Scrape a single vprok.ru product page for a given delivery region.

Prices on vprok.ru depend on the delivery region, so the parser first makes
sure the requested region is active, then saves a full page screenshot
(``screenshot.jpg``) and the price, old price, rating and review count
(``product.txt``).

Usage::

    python -m services.product_parser <product_url> <region>
    python -m services.product_parser \\
        https://www.vprok.ru/product/domik-v-derevne-dom-v-der-moloko-ster-3-2-950g--309202 \\
        "Санкт-Петербург и область"

Region selection is best effort: when the region cannot be set the page is
scraped with whatever region is active, unless ``--strict-region`` is given.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from config.logging_config import configure_logging
from config.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)

PRODUCT_BLOCK_SELECTOR = "[class*=ProductPage_buyBlockDesktop]"
DISCOUNT_PRICE_SELECTOR = (
    "[class*=ProductPage_buyBlockDesktop] [class*='Price_role_discount']"
)
OLD_PRICE_SELECTOR = "[class*=ProductPage_buyBlockDesktop] [class*='Price_role_old']"
REGULAR_PRICE_SELECTOR = (
    "[class*='ProductPage_buyBlockDesktop'] [class*='Price_role_regular']"
)
RATING_SELECTOR = "[class*='ActionsRow_stars']"
REVIEWS_COUNT_SELECTOR = "[class*='ActionsRow_reviews_']"

REGION_SELECTOR = "[class*='Region_text']"
REGION_LIST_SELECTOR = "[class*='UiRegionListBase_button']"
REGION_LIST_ENDPOINT = "/regionList"

SOLD_OUT = "не определена. Товар вероятно распродан"
PLACEHOLDER = "-"
NO_DATA = "Нет данных"

NUMBER_RUN = re.compile(r"[\d.,]+")


class ProductNotFoundError(RuntimeError):
    """Raised when the page has no product buy block."""


class RegionSelectionError(RuntimeError):
    """Raised when the requested region could not be applied."""


class RegionNotFoundError(RegionSelectionError):
    """Raised when no entry of the region list matches the requested region."""


@dataclass(frozen=True)
class RegionSelection:
    """Outcome of :func:`select_region`.

    ``applied`` is true when the requested region is active, either because it
    already was (``changed`` false) or because it was picked and confirmed by
    the site.  ``current_region`` is the last label read from the page.
    """

    applied: bool
    current_region: str = ""
    reason: Optional[str] = None
    changed: bool = False


@dataclass
class ProductSnapshot:
    price: str
    old_price: str
    rating: Optional[str] = None
    reviews_count: Optional[str] = None

    def to_lines(self) -> List[str]:
        lines: List[str] = []
        if self.price:
            lines.append(f"Цена: {self.price}")
        if self.old_price:
            lines.append(f"Старая цена: {self.old_price}")
        if self.rating:
            lines.append(f"Рейтинг: {self.rating}")
        if self.reviews_count:
            lines.append(f"Количество отзывов: {self.reviews_count}")
        return lines

    def render(self) -> str:
        return "\n".join(self.to_lines()) or NO_DATA


def normalize_text(text: Optional[str]) -> str:
    return " ".join((text or "").split()).casefold()


def clean_number(text: Optional[str]) -> Optional[str]:
    """Keep only the digit/decimal runs of ``text``, e.g. ``"1 299,90 ₽"`` -> ``"1299,90"``.

    Text without any digits is returned unchanged.
    """

    if not text:
        return None
    return "".join(NUMBER_RUN.findall(text)) or text


def is_region_list_response(response) -> bool:
    return REGION_LIST_ENDPOINT in response.url and response.status == 200


async def find_by_text(page, selectors: Iterable[str], text: str):
    """Return the first element under ``selectors`` whose text equals ``text``."""

    target = normalize_text(text)
    for selector in selectors:
        for element in await page.query_selector_all(selector):
            label = await element.evaluate("e => e.innerText || e.textContent || ''")
            if normalize_text(label) == target:
                return element
    return None


async def select_region(
    page,
    region_name: str,
    *,
    control_timeout: int = 5_000,
    list_timeout: int = 5_000,
    confirm_timeout: int = 7_000,
) -> RegionSelection:
    """Make ``region_name`` the active delivery region of ``page``.

    Nothing is clicked when the displayed region already matches (whitespace
    and case are ignored).  Otherwise the region picker is opened, the matching
    entry is clicked and the ``/regionList`` response confirms the change.
    Failures never propagate: they are logged and reported through the
    returned :class:`RegionSelection`.
    """

    current_region = ""
    try:
        control = await page.query_selector(REGION_SELECTOR)
        if control is None:
            raise RegionSelectionError("region control not found on the page")
        current_region = (await control.text_content() or "").strip()

        if normalize_text(current_region) == normalize_text(region_name):
            LOGGER.info("Регион уже выбран: %s", current_region)
            return RegionSelection(applied=True, current_region=current_region)

        await page.wait_for_selector(REGION_SELECTOR, timeout=control_timeout)
        await control.click()
        await page.wait_for_selector(REGION_LIST_SELECTOR, timeout=list_timeout)

        option = await find_by_text(page, [REGION_LIST_SELECTOR], region_name)
        if option is None:
            raise RegionNotFoundError(f'Region "{region_name}" not found')

        async with page.expect_response(is_region_list_response, timeout=confirm_timeout):
            await option.click()
    except Exception as exc:
        LOGGER.warning(
            'Регион "%s" не выбран, остаётся "%s". Region selection skipped: %s',
            region_name,
            current_region,
            exc,
        )
        return RegionSelection(
            applied=False, current_region=current_region, reason=str(exc)
        )

    LOGGER.info("Регион изменён: %s -> %s", current_region, region_name)
    return RegionSelection(applied=True, current_region=region_name, changed=True)


async def read_text(page, selector: str) -> Optional[str]:
    try:
        element = await page.query_selector(selector)
        if element is None:
            return None
        text = await element.text_content()
    except Exception as exc:
        LOGGER.debug("Could not read %s: %s", selector, exc)
        return None
    return (text or "").strip()


async def extract_snapshot(page) -> ProductSnapshot:
    """Read the five product fields concurrently and build the snapshot."""

    price_text, discount_text, old_price_text, rating_text, reviews_text = (
        await asyncio.gather(
            read_text(page, REGULAR_PRICE_SELECTOR),
            read_text(page, DISCOUNT_PRICE_SELECTOR),
            read_text(page, OLD_PRICE_SELECTOR),
            read_text(page, RATING_SELECTOR),
            read_text(page, REVIEWS_COUNT_SELECTOR),
        )
    )
    return ProductSnapshot(
        price=clean_number(price_text or discount_text) or SOLD_OUT,
        # Unquoted "-", the same placeholder as the catalog file (not '"-"').
        old_price=clean_number(old_price_text) or PLACEHOLDER,
        rating=clean_number(rating_text),
        reviews_count=clean_number(reviews_text),
    )


def write_snapshot(snapshot: ProductSnapshot, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(snapshot.render(), encoding="utf-8")


async def run(
    url: str,
    region: str,
    settings: Settings,
    *,
    output: Path,
    screenshot: Path,
    strict_region: bool = False,
) -> ProductSnapshot:
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(
            headless=settings.headless,
            args=list(settings.browser_args),
        )
        try:
            context = await browser.new_context(
                viewport=settings.viewport,
                locale=settings.locale,
                user_agent=settings.user_agent,
            )
            page = await context.new_page()

            LOGGER.info("Открываем %s", url)
            async with page.expect_response(
                is_region_list_response, timeout=settings.product_load_timeout_ms
            ):
                await page.goto(
                    url, wait_until="load", timeout=settings.navigation_timeout_ms
                )
            try:
                await page.wait_for_selector(
                    PRODUCT_BLOCK_SELECTOR, timeout=settings.product_block_timeout_ms
                )
            except PlaywrightTimeoutError as exc:
                raise ProductNotFoundError("Product not found") from exc

            LOGGER.info("Устанавливаем регион: %s", region)
            selection = await select_region(
                page,
                region,
                control_timeout=settings.region_control_timeout_ms,
                list_timeout=settings.region_list_timeout_ms,
                confirm_timeout=settings.region_confirm_timeout_ms,
            )
            if strict_region and not selection.applied:
                raise RegionSelectionError(selection.reason or region)

            LOGGER.info("Сохраняем скриншот в %s", screenshot)
            screenshot.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(
                path=str(screenshot),
                full_page=True,
                type="jpeg",
                quality=settings.screenshot_quality,
            )

            LOGGER.info("Извлекаем данные товара")
            snapshot = await extract_snapshot(page)
            write_snapshot(snapshot, output)
            LOGGER.info("Данные сохранены в %s", output)
            return snapshot
        finally:
            await browser.close()


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Цена, рейтинг и скриншот товара vprok.ru для выбранного региона"
    )
    parser.add_argument("url", nargs="?", help="URL страницы товара")
    parser.add_argument(
        "region",
        nargs="*",
        help='Регион доставки, например "Санкт-Петербург и область"',
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=settings.product_output_file,
        help="Текстовый файл с данными товара (default: %(default)s)",
    )
    parser.add_argument(
        "--screenshot",
        type=Path,
        default=settings.screenshot_file,
        help="Файл скриншота JPEG (default: %(default)s)",
    )
    parser.add_argument(
        "--strict-region",
        action="store_true",
        help="Завершить с ошибкой, если регион не удалось установить",
    )
    parser.add_argument(
        "--headless",
        default=settings.headless,
        action=argparse.BooleanOptionalAction,
        help="Запуск Chromium без окна (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="Уровень логирования (default: %(default)s)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=settings.log_file,
        help="Файл лога (по умолчанию только STDOUT)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = build_parser(settings)
    args = parser.parse_args(argv)
    region = " ".join(args.region).strip()
    if not args.url or not region:
        parser.error("usage: <product_url> <region>")

    configure_logging(args.log_level, args.log_file)
    settings = settings.model_copy(update={"headless": args.headless})

    try:
        asyncio.run(
            run(
                args.url,
                region,
                settings,
                output=args.output,
                screenshot=args.screenshot,
                strict_region=args.strict_region,
            )
        )
    except Exception:  # pylint: disable=broad-except
        LOGGER.exception("Ошибка при разборе товара %s", args.url)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
