import time

from playwright.async_api import Error as PlaywrightError

from .browser import RenderingContext
from .errors import ExecutionError, NavigationError
from .log import log_error, log_info
from .models import CaptureOptions
from .network_guard import NetworkGuard


async def prepare(context: RenderingContext, options: CaptureOptions, guard: NetworkGuard) -> None:
    """Load the target into the context and wait until it is ready for capture."""
    page = context.page
    try:
        await context.reset()
        await guard.install(context.context)
        await page.set_extra_http_headers(dict(options.headers))
        await page.set_viewport_size({"width": options.width, "height": options.height})
    except PlaywrightError as e:
        raise ExecutionError(f"Could not configure rendering context {context.slot}: {e}") from e

    navigation_start = time.time()
    try:
        if options.url is not None:
            await page.goto(options.url, wait_until=options.wait_until, timeout=options.timeout)
        else:
            await page.set_content(options.html, wait_until=options.wait_until, timeout=options.timeout)
    except PlaywrightError as nav_error:
        navigation_time = (time.time() - navigation_start) * 1000
        log_error(f"Navigation to {options.target} failed after {navigation_time:.2f}ms: {type(nav_error).__name__}: {nav_error}")
        raise NavigationError(f"Navigation to {options.target} failed: {nav_error}") from nav_error
    navigation_time = (time.time() - navigation_start) * 1000
    log_info(f"Navigation to {options.target} completed in {navigation_time:.2f}ms")

    try:
        if options.wait_for_selector:
            await page.wait_for_selector(options.wait_for_selector, timeout=options.timeout)
        if options.wait_for_function:
            await page.wait_for_function(options.wait_for_function, timeout=options.timeout)
        if options.delay:
            await page.wait_for_timeout(options.delay)
    except PlaywrightError as e:
        raise NavigationError(f"Page {options.target} never became ready: {e}") from e
