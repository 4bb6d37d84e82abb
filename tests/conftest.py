import json
import pytest
import httpx
from fastapi.testclient import TestClient

from main import app
from app.dependencies import get_learnworlds_client, get_mapping_stores, get_shopify_client
from app.integrations.learnworlds import LearnWorldsClient, LearnWorldsConfig
from app.integrations.shopify import ShopifyClient, ShopifyConfig
from app.services.mapping_backends import JsonFileBackend
from app.services.mappings import MappingStores


class MemoryBackend:
    """In-memory load/save backend with switchable failures"""

    def __init__(self, image=None):
        self.image = dict(image or {})
        self.fail_load = False
        self.fail_save = False
        self.saves = 0

    def load(self) -> dict:
        if self.fail_load:
            raise OSError("disk unavailable")
        return dict(self.image)

    def save(self, image: dict) -> None:
        if self.fail_save:
            raise OSError("disk full")
        self.saves += 1
        self.image = dict(image)


class FakeLearnWorlds:
    """
    Minimal LearnWorlds API behind httpx.MockTransport.

    The email filter is case-sensitive on purpose so the client's
    case-insensitive fallback scan gets exercised.
    """

    def __init__(self):
        self.users = []
        self.enrollments = set()
        self.requests = []
        self.enrollment_status = None  # force a status on enroll/unenroll calls

    def add_user(self, email, user_id=None):
        user = {"id": user_id or f"lw-{len(self.users) + 1}", "email": email}
        self.users.append(user)
        return user

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")

        if parts == ["v2", "users"] and request.method == "GET":
            users = self.users
            email = request.url.params.get("email")
            if email is not None:
                users = [u for u in users if u["email"] == email]
            limit = request.url.params.get("limit")
            if limit is not None:
                users = users[: int(limit)]
            return httpx.Response(200, json={"data": users, "meta": {"totalItems": len(users)}})

        if parts == ["v2", "users"] and request.method == "POST":
            body = json.loads(request.content)
            user = {"id": f"lw-{len(self.users) + 1}", **body}
            self.users.append(user)
            return httpx.Response(201, json=user)

        if len(parts) == 5 and parts[:2] == ["v2", "users"] and parts[3] == "courses":
            if self.enrollment_status is not None:
                return httpx.Response(self.enrollment_status, json={"error": "forced"})
            key = (parts[2], parts[4])
            if request.method == "POST":
                self.enrollments.add(key)
                return httpx.Response(200, json={"success": True})
            if request.method == "DELETE":
                if key not in self.enrollments:
                    return httpx.Response(404, json={"error": "Enrollment not found"})
                self.enrollments.discard(key)
                return httpx.Response(204)

        return httpx.Response(404, json={"error": "Not found"})

    @property
    def mutations(self):
        return [r for r in self.requests if r.method in ("POST", "DELETE")]

    def client(self) -> LearnWorldsClient:
        config = LearnWorldsConfig(api_key="test-key", base_url="https://lw.test", school_id="school-1")
        return LearnWorldsClient(config, transport=httpx.MockTransport(self.handler))


class FakeShopify:
    def __init__(self):
        self.orders = {}
        self.status_code = None
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code is not None:
            return httpx.Response(self.status_code, json={"errors": "forced"})
        order_id = request.url.path.rsplit("/", 1)[-1].removesuffix(".json")
        order = self.orders.get(order_id)
        if order is None:
            return httpx.Response(404, json={"errors": "Not Found"})
        return httpx.Response(200, json={"order": order})

    def client(self) -> ShopifyClient:
        config = ShopifyConfig(shop_domain="shop.myshopify.com", access_token="shpat_test")
        return ShopifyClient(config, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def stores(tmp_path):
    """File-backed stores in a temp directory"""
    return MappingStores.from_backends(
        product_courses=JsonFileBackend(tmp_path / "product_course_mapping.json"),
        bundle_components=JsonFileBackend(tmp_path / "bundle_components.json"),
        bundle_names=JsonFileBackend(tmp_path / "bundle_name_mapping.json"),
    )


@pytest.fixture
def learnworlds():
    return FakeLearnWorlds()


@pytest.fixture
def shopify():
    return FakeShopify()


@pytest.fixture
def api_client(stores, learnworlds, shopify):
    """TestClient with temp stores and fake upstream APIs"""
    app.dependency_overrides[get_mapping_stores] = lambda: stores
    app.dependency_overrides[get_learnworlds_client] = learnworlds.client
    app.dependency_overrides[get_shopify_client] = shopify.client
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


SUBSCRIPTION_ORDER = {
    "id": 5001,
    "email": "a@x.com",
    "tags": "subscription, vip",
    "financial_status": "paid",
    "customer": {"id": 77, "email": "a@x.com", "first_name": "Ada", "last_name": "Lovelace"},
    "line_items": [{"product_id": 111, "title": "Monthly Course Access"}],
}


@pytest.fixture
def subscription_order():
    return json.loads(json.dumps(SUBSCRIPTION_ORDER))
