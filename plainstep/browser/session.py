import base64
from typing import Optional

from playwright.sync_api import sync_playwright, Browser, BrowserContext, Page, Playwright

from plainstep.config import BROWSER_ARGS, VIEWPORT, PLAINSTEP_HEADLESS


class BrowserSession:
    """Owns the Playwright browser, context and page for one test case."""

    def __init__(self, headless: bool = PLAINSTEP_HEADLESS, ignore_https_errors: bool = True):
        self.headless = headless
        self.ignore_https_errors = ignore_https_errors
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    def start(self) -> Page:
        self.playwright = sync_playwright().start()
        self.browser = self.playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
        self.context = self.browser.new_context(
            viewport=VIEWPORT,
            ignore_https_errors=self.ignore_https_errors,
        )
        self.page = self.context.new_page()
        return self.page

    def relaunch(self) -> Page:
        self.close()
        return self.start()

    def screenshot_base64(self) -> Optional[str]:
        if self.page is None:
            return None
        try:
            data = self.page.screenshot(type="png", full_page=False)
        except Exception as e:
            print(f"Warning: screenshot failed: {e}")
            return None
        return base64.b64encode(data).decode("ascii")

    def close(self):
        for closer in (self.context, self.browser):
            if closer is None:
                continue
            try:
                closer.close()
            except Exception as e:
                print(f"Warning: error while closing browser: {e}")
        if self.playwright is not None:
            try:
                self.playwright.stop()
            except Exception as e:
                print(f"Warning: error while stopping Playwright: {e}")
        self.playwright = self.browser = self.context = self.page = None
