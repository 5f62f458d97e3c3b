"""Local aiohttp servers standing in for the portal and NopeCHA."""

from typing import Dict, List, Set, Tuple

from aiohttp import web

from bspl_harvester.connectors.smes.client import SmesClient
from bspl_harvester.config.settings import DEFAULT_PAGE_PATH

from .fakes import PNG_BYTES


async def start_server(app: web.Application) -> Tuple[web.AppRunner, str]:
    """Serve ``app`` on a free local port and return the runner and base URL."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()

    port = runner.addresses[0][1]
    return runner, f"http://127.0.0.1:{port}"


class FakePortal:
    """Captcha-gated portal.

    Every captcha request opens a new session. A page is only served to a
    session that presents ``answer`` as the captcha.
    """

    def __init__(self, answer: str = "160665"):
        self.answer = answer
        self.failing_captcha_requests: Set[int] = set()
        self.captcha_requests = 0
        self.page_requests: List[Dict[str, str]] = []
        self.base_url = ""

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(SmesClient.CAPTCHA_PATH, self.captcha)
        app.router.add_post(DEFAULT_PAGE_PATH, self.page)
        return app

    async def captcha(self, request: web.Request) -> web.Response:
        self.captcha_requests += 1
        number = self.captcha_requests
        if number in self.failing_captcha_requests:
            return web.Response(status=500, text="captcha backend unavailable")

        response = web.Response(body=PNG_BYTES, content_type="image/png")
        response.set_cookie("JSESSIONID", f"session-{number}")
        return response

    async def page(self, request: web.Request) -> web.Response:
        form = await request.post()
        record = {
            "vniaSn": form.get("vniaSn"),
            "captcha": form.get("captcha"),
            "session": request.cookies.get("JSESSIONID"),
        }
        self.page_requests.append(record)

        if not record["session"] or record["captcha"] != self.answer:
            return web.Response(status=403, text="invalid captcha")

        html = (
            "<html><body><table>"
            f"<tr><th>vniaSn</th><td>{record['vniaSn']}</td></tr>"
            "<tr><th>유동자산</th><td>1,000</td></tr>"
            "</table></body></html>"
        )
        return web.Response(text=html, content_type="text/html")


class FakeNopecha:
    """NopeCHA text-captcha API.

    Each job answers "incomplete" for ``pending_polls`` polls before
    returning ``answer``. With ``out_of_credit`` every poll reports code 16.
    """

    def __init__(self, api_key: str = "test-key", answer: str = "160665", pending_polls: int = 0):
        self.api_key = api_key
        self.answer = answer
        self.pending_polls = pending_polls
        self.out_of_credit = False
        # Replacement token per submission number, and replacement poll bodies per token
        self.tokens: Dict[int, str] = {}
        self.poll_bodies: Dict[str, dict] = {}
        self.submissions: List[dict] = []
        self.polls: List[str] = []
        self._poll_counts: Dict[str, int] = {}
        self.base_url = ""

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/", self.submit)
        app.router.add_get("/", self.get_answer)
        return app

    async def submit(self, request: web.Request) -> web.Response:
        payload = await request.json()
        if payload.get("key") != self.api_key:
            return web.json_response({"error": 10, "message": "Invalid key"}, status=403)
        self.submissions.append(payload)
        number = len(self.submissions)
        return web.json_response({"data": self.tokens.get(number, f"job-{number}")})

    async def get_answer(self, request: web.Request) -> web.Response:
        token = request.query.get("id", "")
        self.polls.append(token)

        if token in self.poll_bodies:
            return web.json_response(self.poll_bodies[token], status=409)

        if self.out_of_credit:
            return web.json_response({"error": 16, "message": "Out of credit"}, status=409)

        seen = self._poll_counts.get(token, 0)
        self._poll_counts[token] = seen + 1
        if seen < self.pending_polls:
            return web.json_response({"error": 14, "message": "Incomplete job"}, status=409)
        return web.json_response({"data": [self.answer]})
