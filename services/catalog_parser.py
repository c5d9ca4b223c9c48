"""Extract the product list of a vprok.ru catalog page.

The catalog is rendered by Next.js, so the first page of products is already
present in the ``<script id="__NEXT_DATA__">`` payload.  The parser opens the
page in Chromium (Playwright), waits for the document response, reads that
payload and saves the products to ``products_api.txt`` as a JSON array.

Usage::

    python -m services.catalog_parser https://www.vprok.ru/catalog/7382/pomidory-i-ovoschnye-nabory
    python -m services.catalog_parser URL --use-requests      # без браузера
    python -m services.catalog_parser --html-snapshot page.html

Nothing is written when the payload is missing, malformed or holds no
products: the run only reports "Товары не найдены".
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from config.logging_config import configure_logging
from config.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)

NEXT_DATA_ID = "__NEXT_DATA__"
NEXT_DATA_SELECTOR = f"#{NEXT_DATA_ID}"
PRODUCTS_PATH = ("props", "pageProps", "initialStore", "catalogPage", "products")
PLACEHOLDER = "-"
NO_PRODUCTS_MESSAGE = "Товары не найдены (возможно, пустая страница или блокировка)."


class CatalogError(RuntimeError):
    """Raised when the catalog page itself cannot be loaded."""


@dataclass(frozen=True)
class CatalogProduct:
    name: str
    url: str
    rating: Any
    reviews: Any
    price: Any
    promo_price: Any
    price_before_promo: Any
    discount: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Название товара": self.name,
            "Cсылка на страницу товара": self.url,
            "Рейтинг": self.rating,
            "Количество отзывов": self.reviews,
            "Цена": self.price,
            "Акционная цена": self.promo_price,
            "Цена до акции": self.price_before_promo,
            "Размер скидки": self.discount,
        }


def get_nested(item: Any, *keys: str) -> Optional[Any]:
    current: Any = item
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def _is_positive(value: Any) -> bool:
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


def map_product(raw: Any, base_url: str) -> CatalogProduct:
    """Turn one raw ``catalogPage.products`` entry into a :class:`CatalogProduct`.

    Every field has a fallback, so the mapping never fails: ``"-"`` for text
    and optional prices, ``0`` for the review count and the price.  Promotional
    prices are only reported when the entry carries a positive ``oldPrice``.
    """

    entry: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    old_price = entry.get("oldPrice")
    on_sale = _is_positive(old_price)
    price = entry.get("price") or 0
    discount = entry.get("discount")

    return CatalogProduct(
        name=str(entry.get("name") or PLACEHOLDER),
        url=base_url + str(entry.get("url") or ""),
        rating=entry.get("rating") or PLACEHOLDER,
        reviews=entry.get("reviews") or 0,
        price=price,
        promo_price=price if on_sale else PLACEHOLDER,
        price_before_promo=old_price if on_sale else PLACEHOLDER,
        discount=discount if _is_positive(discount) else PLACEHOLDER,
    )


def parse_next_data(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        LOGGER.error("Блок %s пуст или отсутствует", NEXT_DATA_ID)
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        LOGGER.error("Ошибка парсинга %s: %s", NEXT_DATA_ID, exc)
        return None
    if not isinstance(data, dict):
        LOGGER.error("Неожиданный формат %s: %s", NEXT_DATA_ID, type(data).__name__)
        return None
    return data


def extract_products(data: Optional[Mapping[str, Any]]) -> List[Any]:
    products = get_nested(data, *PRODUCTS_PATH)
    if not isinstance(products, list):
        return []
    return products


def next_data_from_html(html: str) -> Optional[str]:
    """Return the raw ``__NEXT_DATA__`` text embedded in ``html``."""

    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id=NEXT_DATA_ID)
    if script is None:
        return None
    return script.string or script.get_text()


async def read_next_data(page) -> str:
    """Read the ``__NEXT_DATA__`` payload from the live page."""

    return await page.eval_on_selector(NEXT_DATA_SELECTOR, "el => el.textContent")


async def fetch_next_data(url: str, settings: Settings) -> Optional[str]:
    """Open ``url`` in Chromium and return its ``__NEXT_DATA__`` payload.

    The document response is awaited first (exact URL, must be 200); the
    payload is then read from the rendered page.  The response body only
    serves as a fallback when the script tag is missing from the DOM.
    """

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(
            headless=settings.headless,
            args=list(settings.browser_args),
        )
        try:
            context = await browser.new_context(
                no_viewport=True,
                locale=settings.locale,
                user_agent=settings.user_agent,
            )
            page = await context.new_page()

            LOGGER.info("Открываем %s", url)
            async with page.expect_response(
                lambda response: response.url == url,
                timeout=settings.catalog_response_timeout_ms,
            ) as response_info:
                await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=settings.navigation_timeout_ms,
                )
            response = await response_info.value
            if response.status != 200:
                raise CatalogError(f"Ошибка загрузки страницы: {response.status}")

            try:
                return await read_next_data(page)
            except PlaywrightError as exc:
                LOGGER.warning(
                    "%s absent from the DOM (%s), falling back to the response body",
                    NEXT_DATA_ID,
                    exc,
                )
                return next_data_from_html(await response.text())
        finally:
            await browser.close()


def fetch_next_data_via_requests(url: str, settings: Settings) -> Optional[str]:
    headers = {
        "User-Agent": settings.user_agent,
        "Accept-Language": "ru-RU,ru;q=0.9",
    }
    LOGGER.info("Загружаем %s через requests", url)
    response = requests.get(url, headers=headers, timeout=settings.request_timeout)
    response.raise_for_status()
    return next_data_from_html(response.text)


def write_products(products: Sequence[CatalogProduct], destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    payload = [product.to_dict() for product in products]
    with destination.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Сбор товаров со страницы каталога vprok.ru"
    )
    parser.add_argument("url", nargs="?", help="URL страницы каталога")
    parser.add_argument(
        "--output",
        type=Path,
        default=settings.catalog_output_file,
        help="Файл для сохранения товаров (default: %(default)s)",
    )
    parser.add_argument(
        "--use-requests",
        action="store_true",
        help="Загрузить страницу через requests, без браузера",
    )
    parser.add_argument(
        "--html-snapshot",
        type=Path,
        help="Локальный HTML файл для разбора (браузер не запускается)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=settings.request_timeout,
        help="Таймаут HTTP для requests (default: %(default)s s)",
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
    if not args.url and not args.html_snapshot:
        parser.error("укажите URL каталога или --html-snapshot")

    configure_logging(args.log_level, args.log_file)
    settings = settings.model_copy(
        update={"headless": args.headless, "request_timeout": args.request_timeout}
    )

    try:
        if args.html_snapshot:
            LOGGER.info("Разбор локального файла %s", args.html_snapshot)
            raw = next_data_from_html(args.html_snapshot.read_text(encoding="utf-8"))
        elif args.use_requests:
            raw = fetch_next_data_via_requests(args.url, settings)
        else:
            raw = asyncio.run(fetch_next_data(args.url, settings))
    except (PlaywrightTimeoutError, PlaywrightError, CatalogError):
        LOGGER.exception("Не удалось загрузить страницу каталога")
        return 1
    except requests.RequestException:
        LOGGER.exception("HTTP ошибка при загрузке каталога")
        return 1
    except OSError:
        LOGGER.exception("Не удалось прочитать %s", args.html_snapshot)
        return 1

    raw_products = extract_products(parse_next_data(raw))
    if not raw_products:
        LOGGER.info(NO_PRODUCTS_MESSAGE)
        return 0

    products = [map_product(entry, settings.base_url) for entry in raw_products]
    LOGGER.info("Найдено товаров: %d", len(products))

    try:
        write_products(products, args.output)
    except OSError:
        LOGGER.exception("Не удалось сохранить %s", args.output)
        return 1

    LOGGER.info("Данные сохранены в %s", args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
