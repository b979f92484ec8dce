# framecast/browser.py
from __future__ import annotations
import logging
import subprocess
import sys
from pathlib import Path
from typing import Optional, Sequence

from playwright.async_api import Error as PlaywrightError, async_playwright

from .errors import BrowserNotFoundError, ProtocolError
from .protocol import ProtocolSession

logger = logging.getLogger("framecast.browser")

# Flags that make compositing and animation deterministic under begin-frame control.
DETERMINISTIC_FLAGS = (
    "--run-all-compositor-stages-before-draw",
    "--enable-surface-synchronization",
    "--disable-threaded-animation",
    "--disable-threaded-scrolling",
    "--disable-checker-imaging",
    "--deterministic-mode",
    "--enable-begin-frame-control",
    "--hide-scrollbars",
    "--no-sandbox",
    "--disable-gpu",
)


def _playwright_install(*args: str, timeout: float) -> Optional[int]:
    cmd = [sys.executable, "-m", "playwright", "install", *args]
    try:
        return subprocess.run(
            cmd, check=False, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, timeout=timeout,
        ).returncode
    except subprocess.TimeoutExpired:
        logger.warning("'%s' timed out after %ss", " ".join(cmd[2:]), timeout)
    except OSError as exc:
        logger.warning("'%s' failed to start: %s", " ".join(cmd[2:]), exc)
    return None


def ensure_playwright_installed(check_timeout: float = 5, install_timeout: float = 300) -> None:
    """Make sure Playwright's Chromium is available, installing it if needed.

    A check or install that cannot complete in time is not treated as fatal.
    Raises :class:`BrowserNotFoundError` when the install ran and failed.
    """
    if _playwright_install("--check", "chromium", timeout=check_timeout) in (0, None):
        return
    logger.info("Playwright Chromium missing, installing (timeout %ss)", install_timeout)
    code = _playwright_install("chromium", timeout=install_timeout)
    if code is None:
        return
    if code != 0:
        raise BrowserNotFoundError(
            f"Playwright Chromium is missing and 'playwright install chromium' exited with {code}"
        )
    logger.info("Playwright Chromium installed")


class BrowserLauncher:
    """Launches headless Chromium and yields a session on a begin-frame controlled target.

    Usage::

        async with BrowserLauncher(1280, 720) as session:
            ...

    Leaving the block closes the target, the browser and Playwright itself.
    """

    def __init__(
        self,
        width: int,
        height: int,
        executable_path: Optional[Path] = None,
        extra_args: Sequence[str] = (),
    ) -> None:
        self.width = width
        self.height = height
        self.executable_path = executable_path
        self.extra_args = tuple(extra_args)
        self._pw = None
        self._browser = None
        self._context = None

    async def _launch(self):
        try:
            return await self._pw.chromium.launch(
                headless=True,
                args=[*DETERMINISTIC_FLAGS, *self.extra_args],
                executable_path=str(self.executable_path) if self.executable_path else None,
            )
        except PlaywrightError as exc:
            if "Executable doesn't exist" in str(exc):
                raise BrowserNotFoundError(
                    "Playwright Chromium is missing. Run `playwright install chromium`."
                ) from exc
            raise ProtocolError(f"could not launch Chromium: {exc}") from exc

    async def _create_target(self):
        # Playwright has no option for begin-frame control, so the target is created
        # through the browser session inside the context Playwright already manages.
        placeholder = await self._context.new_page()
        probe = await self._context.new_cdp_session(placeholder)
        info = await probe.send("Target.getTargetInfo")
        await probe.detach()

        browser_cdp = await self._browser.new_browser_cdp_session()
        async with self._context.expect_page() as page_info:
            await browser_cdp.send("Target.createTarget", {
                "url": "about:blank",
                "width": self.width,
                "height": self.height,
                "browserContextId": info["targetInfo"]["browserContextId"],
                "enableBeginFrameControl": True,
            })
        page = await page_info.value
        await browser_cdp.detach()
        await placeholder.close()
        return page

    async def __aenter__(self) -> ProtocolSession:
        if self.executable_path is not None and not Path(self.executable_path).exists():
            raise BrowserNotFoundError(f"Unable to find a Chromium at {self.executable_path}")

        self._pw = await async_playwright().start()
        try:
            self._browser = await self._launch()
            self._context = await self._browser.new_context(
                viewport={"width": self.width, "height": self.height},
            )
            page = await self._create_target()
            session = ProtocolSession(await self._context.new_cdp_session(page))
            await session.enable()
        except PlaywrightError as exc:
            await self._release()
            raise ProtocolError(f"could not prepare capture target: {exc}") from exc
        except BaseException:
            await self._release()
            raise
        logger.info("Chromium ready (%dx%d)", self.width, self.height)
        return session

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._release()

    async def _release(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._pw is not None:
            await self._pw.stop()
            self._pw = None
