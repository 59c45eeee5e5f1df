"""Mock docket site for the Bug Civil Court.

The Bug Civil Court is a fictional court where insects file civil lawsuits
against each other. Its docket is served as plain HTML:

- ``/cases/page/<n>``: a paginated case table with a "next" link on every
  page but the last;
- ``/cases/<docket>``: a case detail page with parties and a summary;
- ``/echo``: reports the request's User-Agent;
- ``/redirect``: redirects to the first docket page;
- ``/error``: always answers 500.
"""

from dataclasses import dataclass
from html import escape

from aiohttp import web

CASES_PER_PAGE = 3


@dataclass
class MockCase:
    """A case in the Bug Civil Court."""

    docket: str
    case_name: str
    plaintiff: str
    defendant: str
    judge: str
    summary: str


CASES: list[MockCase] = [
    MockCase(
        docket="BCC-2024-001",
        case_name="Beetle v. Ant Colony",
        plaintiff="Barry Beetle",
        defendant="Ant Colony #47",
        judge="Hon. Mantis Green",
        summary="Defendant tunneled under plaintiff's log without permission.",
    ),
    MockCase(
        docket="BCC-2024-002",
        case_name="Butterfly v. Caterpillar",
        plaintiff="Monarch Butterfly",
        defendant="Carl Caterpillar",
        judge="Hon. Dragonfly Swift",
        summary="Dispute over a milkweed leaf eaten before it was shared.",
    ),
    MockCase(
        docket="BCC-2024-003",
        case_name="Spider v. Fly",
        plaintiff="Charlotte Spider",
        defendant="Frank Fly",
        judge="Hon. Mantis Green",
        summary="Trespass on a web during business hours.",
    ),
    MockCase(
        docket="BCC-2024-004",
        case_name="Grasshopper v. Ant",
        plaintiff="Gary Grasshopper",
        defendant="Annie Ant",
        judge="Hon. Beetle Bailey",
        summary="Plaintiff seeks a share of the winter stores.",
    ),
    MockCase(
        docket="BCC-2024-005",
        case_name="Bee v. Wasp",
        plaintiff="Queen Bee",
        defendant="Walter Wasp",
        judge="Hon. Dragonfly Swift",
        summary="Defamation over remarks about honey quality.",
    ),
]


def page_count() -> int:
    return (len(CASES) + CASES_PER_PAGE - 1) // CASES_PER_PAGE


def generate_cases_page_html(page: int) -> str:
    """Render one page of the case table."""
    start = (page - 1) * CASES_PER_PAGE
    rows = "\n".join(
        f"""    <tr>
      <td class="docket">{escape(case.docket)}</td>
      <td><a class="case-link" href="/cases/{case.docket}">{escape(case.case_name)}</a></td>
      <td class="judge">{escape(case.judge)}</td>
    </tr>"""
        for case in CASES[start : start + CASES_PER_PAGE]
    )
    next_link = (
        f'<a class="next" href="/cases/page/{page + 1}">Next</a>'
        if page < page_count()
        else ""
    )
    return f"""<!DOCTYPE html>
<html>
<head><title>Bug Civil Court - Docket page {page}</title></head>
<body>
  <h1>Bug Civil Court Docket</h1>
  <img class="seal" src="/static/seal.png" alt="Court seal">
  <table id="cases">
    <tr><th>Docket</th><th>Case</th><th>Judge</th></tr>
{rows}
  </table>
  <nav>{next_link}</nav>
</body>
</html>"""


def generate_case_detail_html(case: MockCase) -> str:
    """Render a case detail page."""
    return f"""<!DOCTYPE html>
<html>
<head><title>{escape(case.case_name)}</title></head>
<body>
  <h1>{escape(case.case_name)}</h1>
  <span class="docket" data-docket="{case.docket}">Docket: {escape(case.docket)}</span>
  <div class="party">
    <span class="role">Plaintiff</span>
    <span class="name">{escape(case.plaintiff)}</span>
  </div>
  <div class="party">
    <span class="role">Defendant</span>
    <span class="name">{escape(case.defendant)}</span>
  </div>
  <p class="summary">{escape(case.summary)}</p>
</body>
</html>"""


def get_case_by_docket(docket: str) -> MockCase | None:
    for case in CASES:
        if case.docket == docket:
            return case
    return None


async def handle_cases_page(request: web.Request) -> web.Response:
    page = int(request.match_info["page"])
    if not 1 <= page <= page_count():
        raise web.HTTPNotFound(text="No such page")
    return web.Response(
        text=generate_cases_page_html(page), content_type="text/html"
    )


async def handle_case_detail(request: web.Request) -> web.Response:
    case = get_case_by_docket(request.match_info["docket"])
    if case is None:
        raise web.HTTPNotFound(text="No such case")
    return web.Response(
        text=generate_case_detail_html(case), content_type="text/html"
    )


async def handle_echo(request: web.Request) -> web.Response:
    user_agent = request.headers.get("User-Agent", "")
    return web.Response(
        text=f'<html><body><p id="ua">{escape(user_agent)}</p></body></html>',
        content_type="text/html",
    )


async def handle_redirect(request: web.Request) -> web.Response:
    raise web.HTTPFound("/cases/page/1")


async def handle_error(request: web.Request) -> web.Response:
    return web.Response(
        text="<html><body>Clerk's office on fire</body></html>",
        status=500,
        content_type="text/html",
    )


XHTML_NOTICE = (
    '<?xml version="1.0" encoding="utf-8"?>\n'
    '<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Strict//EN" '
    '"http://www.w3.org/TR/xhtml1/DTD/xhtml1-strict.dtd">\n'
    '<html xmlns="http://www.w3.org/1999/xhtml"><body>'
    '<h1>Notice of Recess</h1><p class="room">Salle Caf\u00e9</p>'
    "</body></html>"
)


async def handle_notice(request: web.Request) -> web.Response:
    return web.Response(
        body=XHTML_NOTICE.encode("utf-8"),
        content_type="application/xhtml+xml",
        charset="utf-8",
    )


def create_app() -> web.Application:
    """Create the docket application."""
    app = web.Application()
    app.router.add_get("/cases/page/{page:\\d+}", handle_cases_page)
    app.router.add_get("/cases/{docket}", handle_case_detail)
    app.router.add_get("/echo", handle_echo)
    app.router.add_get("/redirect", handle_redirect)
    app.router.add_get("/error", handle_error)
    app.router.add_get("/notice", handle_notice)
    return app
