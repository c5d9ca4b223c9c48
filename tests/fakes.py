"""In-memory stand-ins for the parts of the Playwright API the parsers use."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class FakeElement:
    def __init__(self, page: "FakePage", text: Optional[str], name: str = "") -> None:
        self.page = page
        self.text = text
        self.name = name

    async def text_content(self) -> Optional[str]:
        return self.text

    async def evaluate(self, expression: str) -> str:
        return self.text or ""

    async def click(self) -> None:
        self.page.interactions.append(("click", self.name or self.text))
        if self.page.on_click is not None:
            self.page.on_click(self)


class FakeResponse:
    def __init__(self, url: str, status: int = 200, body: str = "") -> None:
        self.url = url
        self.status = status
        self.body = body

    async def text(self) -> str:
        return self.body


class FakeEventInfo:
    def __init__(self, value: Any) -> None:
        self._value = value

    @property
    def value(self):
        async def resolve() -> Any:
            return self._value

        return resolve()


class FakePage:
    """Serves elements from ``elements`` (selector -> list of texts).

    Every call that changes or waits on the page is recorded in
    ``interactions``; plain reads are not.  ``response`` is what
    ``expect_response`` hands back; when set, it must satisfy the predicate.
    """

    def __init__(
        self,
        elements: Optional[Dict[str, List[Optional[str]]]] = None,
        failing_selectors: Optional[List[str]] = None,
        missing_selectors_on_wait: Optional[List[str]] = None,
        response: Optional[FakeResponse] = None,
    ) -> None:
        self.elements = {
            selector: [FakeElement(self, text, selector) for text in texts]
            for selector, texts in (elements or {}).items()
        }
        self.failing_selectors = set(failing_selectors or [])
        self.missing_selectors_on_wait = set(missing_selectors_on_wait or [])
        self.response = response
        self.interactions: List[tuple] = []
        self.screenshots: List[Dict[str, Any]] = []
        self.on_click = None

    def add_elements(self, selector: str, texts: List[str]) -> None:
        self.elements[selector] = [FakeElement(self, text, selector) for text in texts]

    async def goto(self, url: str, wait_until: str = "load", timeout: int = 0) -> None:
        self.interactions.append(("goto", url, wait_until))

    async def query_selector(self, selector: str) -> Optional[FakeElement]:
        if selector in self.failing_selectors:
            raise RuntimeError(f"boom on {selector}")
        found = self.elements.get(selector) or []
        return found[0] if found else None

    async def query_selector_all(self, selector: str) -> List[FakeElement]:
        return list(self.elements.get(selector) or [])

    async def eval_on_selector(self, selector: str, expression: str) -> Optional[str]:
        found = self.elements.get(selector) or []
        if not found:
            raise PlaywrightError(f"Failed to find element matching selector \"{selector}\"")
        return found[0].text

    async def wait_for_selector(self, selector: str, timeout: int = 0) -> FakeElement:
        self.interactions.append(("wait_for_selector", selector))
        if selector in self.missing_selectors_on_wait or not self.elements.get(selector):
            raise PlaywrightTimeoutError(
                f"Timeout {timeout}ms exceeded waiting for {selector}"
            )
        return self.elements[selector][0]

    @asynccontextmanager
    async def expect_response(self, predicate, timeout: int = 0):
        self.interactions.append(("expect_response", timeout))
        if self.response is not None and not predicate(self.response):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded while waiting for event \"response\"")
        yield FakeEventInfo(self.response)

    async def screenshot(self, path: str, **options: Any) -> bytes:
        self.screenshots.append(dict(options, path=path))
        Path(path).write_bytes(b"\xff\xd8\xff\xd9")
        return b""


class FakeBrowser:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.context_options: Optional[Dict[str, Any]] = None
        self.closed = False

    async def new_context(self, **options: Any):
        self.context_options = options

        async def new_page() -> FakePage:
            return self.page

        return SimpleNamespace(new_page=new_page)

    async def close(self) -> None:
        self.closed = True


class FakePlaywright:
    """Replaces ``async_playwright``: calling it yields itself as the driver."""

    def __init__(self, page: FakePage) -> None:
        self.browser = FakeBrowser(page)
        self.launch_options: Optional[Dict[str, Any]] = None
        self.chromium = SimpleNamespace(launch=self._launch)

    async def _launch(self, **options: Any) -> FakeBrowser:
        self.launch_options = options
        return self.browser

    def __call__(self) -> "FakePlaywright":
        return self

    async def __aenter__(self) -> "FakePlaywright":
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False
