import functools
import http.server
import os
import socketserver
import threading
from collections.abc import Iterator
from pathlib import Path

import pytest

from grabber.core.action import Recipe
from grabber.core.controller.runner import Runner
from grabber.io.playwright_driver import PlaywrightDriver

pytestmark = pytest.mark.skipif(
    os.environ.get("GRABBER_E2E") != "1", reason="real browser run; set GRABBER_E2E=1"
)


@pytest.fixture(scope="module")
def web_server() -> Iterator[str]:
    root = Path(__file__).resolve().parent / "fixtures"
    Handler = functools.partial(http.server.SimpleHTTPRequestHandler, directory=str(root))
    httpd = socketserver.TCPServer(("127.0.0.1", 0), Handler)
    t = threading.Thread(target=httpd.serve_forever, daemon=True)
    t.start()
    try:
        yield f"http://127.0.0.1:{httpd.server_address[1]}"
    finally:
        httpd.shutdown()
        httpd.server_close()


@pytest.mark.asyncio
async def test_smoke_end_to_end(web_server: str, tmp_path: Path) -> None:
    recipe = Recipe.model_validate(
        {
            "name": "smoke",
            "actions": [
                {"name": "puppeteer", "params": {"func": "goto", "url": f"{web_server}/smoke.html"}},
                {"name": "type", "params": {"selector": "#q", "text": "hello"}},
                {"name": "click", "params": {"selector": "#go"}},
                {"name": "getElements", "params": {"selector": "#links a", "attribute": "href"}},
                {"name": "setVariable", "params": {"key": "LINKS", "value": "{{INPUT}}"}},
                {"name": "getElements", "params": {"selector": "#result"}},
                {"name": "screenshot", "params": {"name": "smoke"}},
            ],
        }
    )
    driver = PlaywrightDriver(headless=True)
    await driver.start()
    try:
        outcome = await Runner(driver, resources_dir=tmp_path).grab(recipe, payload_id="e2e")
    finally:
        await driver.stop()

    assert outcome.ok, outcome.error
    assert outcome.result == ["hello"]
    assert (tmp_path / "smoke" / "smoke.png").exists()
