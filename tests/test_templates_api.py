import asyncio

from dependency_injector import providers
from fastapi.testclient import TestClient

from api.features.templates.controller import TemplateController
from api.main import app
from tests.conftest import TEMPLATE_NAME


class TestTemplatesRouter:
    def setup_method(self):
        self.client = TestClient(app)

    def _override(self, template_gateway):
        return app.container.controllers.template_controller.override(
            providers.Object(TemplateController(template_gateway=template_gateway))
        )

    def test_get_template(self, template_gateway):
        with self._override(template_gateway):
            response = self.client.get(f"/api/v1/templates/{TEMPLATE_NAME}")

        assert response.status_code == 200
        assert response.json()["data"]["name"] == TEMPLATE_NAME

    def test_get_missing_template(self, template_gateway):
        with self._override(template_gateway):
            response = self.client.get("/api/v1/templates/missing")

        assert response.status_code == 404

    def test_put_replaces_template(self, template_gateway):
        with self._override(template_gateway):
            response = self.client.put(
                f"/api/v1/templates/{TEMPLATE_NAME}",
                json={"text": "{}\n{}\nUser: {}\nBot:", "prose": "Be kind."},
            )

        assert response.status_code == 200
        stored = asyncio.run(template_gateway.load(TEMPLATE_NAME))
        assert stored.prose == "Be kind."

    def test_put_rejects_wrong_slot_count(self, template_gateway):
        with self._override(template_gateway):
            response = self.client.put(
                f"/api/v1/templates/{TEMPLATE_NAME}",
                json={"text": "{} and {}", "prose": ""},
            )

        assert response.status_code == 422
        assert asyncio.run(template_gateway.load(TEMPLATE_NAME)).prose == ""
