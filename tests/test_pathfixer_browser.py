"""Run the injected runtime in headless Chromium against transformed documents."""
from __future__ import annotations

from urllib.parse import urlsplit

import pytest

from lagoon.routing.transform import ServingContext, transform
from lagoon.topology import Topology

sync_api = pytest.importorskip("playwright.sync_api")

ORIGIN = "http://lagoon.test"
# Tracks live setInterval ids so a test can see whether polling stopped.
TIMER_TRACKER = """
window.__lagoonTimers = new Set();
const nativeSetInterval = window.setInterval;
const nativeClearInterval = window.clearInterval;
window.setInterval = function (...args) {
    const id = nativeSetInterval.apply(window, args);
    window.__lagoonTimers.add(id);
    return id;
};
window.clearInterval = function (id) {
    window.__lagoonTimers.delete(id);
    return nativeClearInterval.call(window, id);
};
"""
DOCUMENT = """<!doctype html>
<html>
  <head>
    <script src="/chunk.js"></script>
    <link rel="stylesheet" href="/style.css">
  </head>
  <body>
    <a id="protocol-relative" href="//cdn.example.com/lib.js">cdn</a>
    <img id="relative" src="img/a.png">
    <img id="absolute-url" src="https://example.com/b.png">
    <a id="root" href="/about">about</a>
    <img id="backslash" src="/\\evil.example/x.png">
  </body>
</html>
"""


@pytest.fixture(scope="module")
def browser():
    with sync_api.sync_playwright() as playwright:
        try:
            browser = playwright.chromium.launch(headless=True)
        except Exception as exc:
            pytest.skip(f"chromium unavailable: {exc}")
        yield browser
        browser.close()


@pytest.fixture()
def open_document(browser):
    pages = []

    def open_(
        context: ServingContext,
        document: str = DOCUMENT,
        path: str = "/alpha/index.html",
        init_script: str | None = None,
    ):
        html = transform(document, context)
        page = browser.new_page()
        pages.append(page)
        if init_script:
            page.add_init_script(script=init_script)

        def handle(route):
            url = urlsplit(route.request.url)
            if f"{url.scheme}://{url.netloc}" == ORIGIN and url.path == path:
                route.fulfill(status=200, content_type="text/html", body=html)
            else:
                route.fulfill(status=200, content_type="text/plain", body="")

        page.route("**/*", handle)
        page.goto(f"{ORIGIN}{path}")
        return page

    yield open_
    for page in pages:
        page.close()


def shared_origin() -> ServingContext:
    return ServingContext(topology=Topology.path_prefixed())


def test_parsed_elements_lose_their_leading_slash(open_document) -> None:
    page = open_document(shared_origin())

    assert page.get_attribute("script[src]", "src") == "chunk.js"
    assert page.get_attribute("link[rel=stylesheet]", "href") == "style.css"


def test_other_references_are_untouched(open_document) -> None:
    page = open_document(shared_origin())

    assert page.get_attribute("#root", "href") == "/about"
    assert page.get_attribute("#backslash", "src") == "/\\evil.example/x.png"
    assert page.get_attribute("#protocol-relative", "href") == "//cdn.example.com/lib.js"
    assert page.get_attribute("#relative", "src") == "img/a.png"
    assert page.get_attribute("#absolute-url", "src") == "https://example.com/b.png"


def test_inserted_image_is_rewritten(open_document) -> None:
    page = open_document(shared_origin())

    src = page.evaluate(
        """async () => {
            const img = document.createElement('img');
            img.setAttribute('src', '/logo.png');
            document.body.appendChild(img);
            await new Promise((resolve) => setTimeout(resolve, 0));
            return img.getAttribute('src');
        }"""
    )

    assert src == "logo.png"


def test_stylesheet_inserted_into_head_is_rewritten(open_document) -> None:
    page = open_document(shared_origin())

    href = page.evaluate(
        """async () => {
            const link = document.createElement('link');
            link.setAttribute('rel', 'stylesheet');
            link.setAttribute('href', '/late.css');
            document.head.appendChild(link);
            await new Promise((resolve) => setTimeout(resolve, 0));
            return link.getAttribute('href');
        }"""
    )

    assert href == "late.css"


def test_inserted_subtree_is_rewritten(open_document) -> None:
    page = open_document(shared_origin())

    found = page.evaluate(
        """async () => {
            const wrapper = document.createElement('div');
            wrapper.innerHTML =
                '<p><img src="/x.png"><img src="//y.example/z.png"><a href="/about">a</a></p>';
            document.body.appendChild(wrapper);
            await new Promise((resolve) => setTimeout(resolve, 0));
            return {
                images: Array.from(wrapper.querySelectorAll('img')).map((i) => i.getAttribute('src')),
                link: wrapper.querySelector('a').getAttribute('href'),
            };
        }"""
    )

    assert found == {"images": ["x.png", "//y.example/z.png"], "link": "/about"}


def test_runtime_is_inert_on_shell_origin(open_document) -> None:
    context = ServingContext(topology=Topology.path_prefixed(), shell_origins=(ORIGIN,))

    page = open_document(context)

    assert page.get_attribute("script[src]", "src") == "/chunk.js"
    assert page.get_attribute("#root", "href") == "/about"


def test_local_file_runtime_is_inert_over_http(open_document) -> None:
    page = open_document(ServingContext(topology=Topology.local_file()))

    assert page.get_attribute("script[src]", "src") == "/chunk.js"


def test_local_file_runtime_runs_on_configured_protocol(open_document) -> None:
    page = open_document(ServingContext(topology=Topology.local_file(("http:",))))

    assert page.get_attribute("script[src]", "src") == "chunk.js"


def test_home_control_navigates_home(open_document) -> None:
    context = ServingContext(topology=Topology.path_prefixed(), home_url=f"{ORIGIN}/home.html")
    page = open_document(context)

    page.click("#lagoon-home-control")
    page.wait_for_url(f"{ORIGIN}/home.html")

    assert page.url == f"{ORIGIN}/home.html"


def test_polling_stops_at_load_when_body_never_appears(open_document) -> None:
    document = (
        "<html><head><title>x</title></head>"
        "<body><script>document.body.remove()</script></body></html>"
    )

    page = open_document(shared_origin(), document, init_script=TIMER_TRACKER)

    assert page.evaluate("() => document.body === null")
    assert page.evaluate("() => window.__lagoonTimers.size") == 0
